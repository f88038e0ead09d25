"""
Request and response models for the HTTP API.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .fingerprint import HASH_BITS, HashAlgorithm
from .monitoring import ContentAlert


class CompareRequest(BaseModel):
    """Two hashes to compare; threshold defaults to the algorithm's policy."""
    hash1: str = Field(..., description="First 64-bit hash (16 hex digits)")
    hash2: str = Field(..., description="Second 64-bit hash (16 hex digits)")
    algorithm: HashAlgorithm = Field(default=HashAlgorithm.PHASH)
    threshold: Optional[int] = Field(None, ge=0, le=HASH_BITS)


class SearchRequest(BaseModel):
    """Vault search parameters."""
    hash: str = Field(..., description="64-bit hash to search for")
    algorithm: HashAlgorithm = Field(default=HashAlgorithm.PHASH)
    threshold: Optional[int] = Field(None, ge=0, le=HASH_BITS)


class MonitoringToggle(BaseModel):
    enabled: bool


class AlertListResponse(BaseModel):
    alerts: List[ContentAlert]
    unread_count: int


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Overall service status")
    version: str = Field(..., description="API version")
    components: Dict[str, Any] = Field(..., description="Component health status")
