"""
Hamming-distance comparison of 64-bit perceptual hashes and the per-algorithm
match policy.
"""

from typing import Dict, Optional, Union

import structlog

from sentinel import config
from sentinel.core.exceptions import AlgorithmMismatchError
from sentinel.core.utils import round_half_up
from sentinel.models.fingerprint import HASH_BITS, HashAlgorithm, HashComparison, HashResult, normalize_hash

logger = structlog.get_logger()

HashLike = Union[str, HashResult]


def _unwrap(h1: HashLike, h2: HashLike) -> tuple[int, int, str, str]:
    if isinstance(h1, HashResult) and isinstance(h2, HashResult) and h1.algorithm != h2.algorithm:
        raise AlgorithmMismatchError(
            f"Cannot compare {h1.algorithm.value} hash with {h2.algorithm.value} hash"
        )
    hex1 = h1.hash if isinstance(h1, HashResult) else normalize_hash(h1)
    hex2 = h2.hash if isinstance(h2, HashResult) else normalize_hash(h2)
    return int(hex1, 16), int(hex2, 16), hex1, hex2


def _check_threshold(threshold: int) -> int:
    if not 0 <= threshold <= HASH_BITS:
        raise ValueError(f"Threshold must be between 0 and {HASH_BITS}, got {threshold}")
    return threshold


def hamming_distance(h1: HashLike, h2: HashLike) -> int:
    """Calculate the number of differing bits between two 64-bit hashes."""
    v1, v2, _, _ = _unwrap(h1, h2)
    return bin(v1 ^ v2).count("1")


def similarity_from_distance(distance: int) -> int:
    """Map a Hamming distance to a 0-100 similarity percentage."""
    return round_half_up((1 - distance / HASH_BITS) * 100)


def compare_hashes(h1: HashLike, h2: HashLike, threshold: int = 10) -> HashComparison:
    """
    Compare two hashes of the same algorithm.

    Args:
        h1: First hash (hex string or HashResult)
        h2: Second hash (hex string or HashResult)
        threshold: Maximum distance still counted as a match

    Returns:
        HashComparison with distance, similarity and match decision
    """
    _check_threshold(threshold)
    v1, v2, hex1, hex2 = _unwrap(h1, h2)
    distance = bin(v1 ^ v2).count("1")

    return HashComparison(
        hash1=hex1,
        hash2=hex2,
        distance=distance,
        similarity=similarity_from_distance(distance),
        is_match=distance <= threshold,
    )


class MatchPolicy:
    """Named match thresholds per hash algorithm."""

    def __init__(self,
                 ahash_threshold: int = config.AHASH_THRESHOLD,
                 dhash_threshold: int = config.DHASH_THRESHOLD,
                 phash_threshold: int = config.PHASH_THRESHOLD):
        self.thresholds: Dict[HashAlgorithm, int] = {
            HashAlgorithm.AHASH: _check_threshold(ahash_threshold),
            HashAlgorithm.DHASH: _check_threshold(dhash_threshold),
            HashAlgorithm.PHASH: _check_threshold(phash_threshold),
        }

    def threshold_for(self, algorithm: HashAlgorithm, override: Optional[int] = None) -> int:
        if override is not None:
            return _check_threshold(override)
        return self.thresholds[HashAlgorithm(algorithm)]

    def compare(self, h1: HashResult, h2: HashResult) -> HashComparison:
        """Compare two hash results using the threshold for their algorithm."""
        comparison = compare_hashes(h1, h2, self.threshold_for(h1.algorithm))
        logger.debug("Hash comparison",
                     algorithm=h1.algorithm.value,
                     distance=comparison.distance,
                     is_match=comparison.is_match)
        return comparison

    def as_dict(self) -> Dict[str, int]:
        return {algorithm.value: threshold for algorithm, threshold in self.thresholds.items()}
