"""
Pydantic models for perceptual hashes and protected assets.
"""

import string
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from sentinel.core.exceptions import InvalidHashError
from sentinel.core.utils import utcnow

__all__ = [
    "HASH_BITS",
    "HASH_HEX_LENGTH",
    "HashAlgorithm",
    "HashResult",
    "FingerprintSet",
    "ProtectedAsset",
    "VaultRecord",
    "VaultMatch",
    "HashComparison",
    "RegistrationResult",
    "normalize_hash",
]

HASH_BITS = 64
HASH_HEX_LENGTH = HASH_BITS // 4

_HEX_DIGITS = set(string.hexdigits)


def normalize_hash(value: Any) -> str:
    """Validate a 64-bit hex hash and return it in uppercase."""
    if not isinstance(value, str):
        raise InvalidHashError(f"Hash must be a string, got {type(value).__name__}")
    if len(value) != HASH_HEX_LENGTH or not set(value) <= _HEX_DIGITS:
        raise InvalidHashError(f"Hash must be {HASH_HEX_LENGTH} hex characters: {value!r}")
    return value.upper()


class HashAlgorithm(str, Enum):
    """Enumeration of supported perceptual hash algorithms."""
    AHASH = "aHash"
    DHASH = "dHash"
    PHASH = "pHash"


class HashResult(BaseModel):
    """A single 64-bit perceptual hash."""
    hash: str = Field(..., description="16 uppercase hex digits")
    algorithm: HashAlgorithm = Field(..., description="Algorithm that produced the hash")
    size: str = Field(default="64-bit")
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("hash", mode="before")
    @classmethod
    def validate_hash(cls, v):
        return normalize_hash(v)

    @property
    def value(self) -> int:
        return int(self.hash, 16)


class FingerprintSet(BaseModel):
    """The three hashes kept for every protected asset."""
    ahash: HashResult
    dhash: HashResult
    phash: HashResult

    @model_validator(mode="after")
    def check_algorithms(self):
        for algorithm in HashAlgorithm:
            result = self.get(algorithm)
            if result.algorithm != algorithm:
                raise ValueError(
                    f"{algorithm.value} slot holds a {result.algorithm.value} hash"
                )
        return self

    def get(self, algorithm: HashAlgorithm) -> HashResult:
        return getattr(self, HashAlgorithm(algorithm).value.lower())

    def hex_values(self) -> Dict[str, str]:
        return {algorithm.value: self.get(algorithm).hash for algorithm in HashAlgorithm}


class ProtectedAsset(BaseModel):
    """An image registered for continuous monitoring."""
    id: str = Field(..., description="Unique asset identifier")
    filename: str = Field(..., description="Original filename")
    thumbnail_ref: Optional[str] = Field(None, description="Storage reference of the thumbnail")
    hashes: FingerprintSet
    uploaded_at: datetime = Field(default_factory=utcnow)
    last_scanned: Optional[datetime] = None
    match_count: int = Field(default=0, ge=0)
    monitoring_enabled: bool = True


class VaultRecord(BaseModel):
    """Fingerprint record as held by the vault."""
    asset_id: str
    hashes: FingerprintSet
    metadata: Dict[str, Any] = Field(default_factory=dict)
    stored_at: datetime = Field(default_factory=utcnow)


class VaultMatch(BaseModel):
    """A vault record within the match threshold of a searched hash."""
    asset_id: str
    similarity: int = Field(..., ge=0, le=100)
    stored_at: datetime


class HashComparison(BaseModel):
    """Outcome of comparing two hashes."""
    hash1: str
    hash2: str
    distance: int = Field(..., ge=0, le=HASH_BITS)
    similarity: int = Field(..., ge=0, le=100)
    is_match: bool


class RegistrationResult(BaseModel):
    """Outcome of registering one image as a protected asset."""
    filename: str
    asset: Optional[ProtectedAsset] = None
    duplicates: List[VaultMatch] = Field(default_factory=list)
    error: Optional[str] = None
