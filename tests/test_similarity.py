import pytest

from sentinel.core.exceptions import AlgorithmMismatchError, InvalidHashError
from sentinel.models.fingerprint import HashAlgorithm, HashResult
from sentinel.services.similarity import MatchPolicy, compare_hashes, hamming_distance, similarity_from_distance

ZERO = "0000000000000000"
ONES = "FFFFFFFFFFFFFFFF"


def test_opposite_hashes():
    comparison = compare_hashes(ZERO, ONES, threshold=63)
    assert comparison.distance == 64
    assert comparison.similarity == 0
    assert comparison.is_match is False


@pytest.mark.parametrize("value", [ZERO, ONES, "8F3A00C1D2E4B765", "0123456789ABCDEF"])
def test_identical_hashes(value):
    comparison = compare_hashes(value, value, threshold=0)
    assert comparison.distance == 0
    assert comparison.similarity == 100
    assert comparison.is_match is True


def test_distance_is_symmetric():
    a, b = "8F3A00C1D2E4B765", "0F3A00C1D2E4B764"
    assert hamming_distance(a, b) == hamming_distance(b, a) == 2


def test_zero_threshold_rejects_any_difference():
    assert compare_hashes(ZERO, "0000000000000001", threshold=0).is_match is False


def test_threshold_is_inclusive():
    # 0x1F has five bits set
    assert compare_hashes(ZERO, "000000000000001F", threshold=5).is_match is True
    assert compare_hashes(ZERO, "000000000000001F", threshold=4).is_match is False


def test_similarity_rounding():
    assert similarity_from_distance(1) == 98
    assert similarity_from_distance(24) == 63  # 62.5 rounds up
    assert similarity_from_distance(32) == 50


def test_lowercase_hashes_are_accepted():
    comparison = compare_hashes("abcdef0123456789", "ABCDEF0123456789")
    assert comparison.distance == 0
    assert comparison.hash1 == "ABCDEF0123456789"


@pytest.mark.parametrize("bad", ["", "123", "FFFFFFFFFFFFFFFFF", "GGGGGGGGGGGGGGGG", "0x00000000000000", None, 42])
def test_invalid_hashes_are_rejected(bad):
    with pytest.raises(InvalidHashError):
        hamming_distance(bad, ZERO)


def test_mixed_algorithms_are_rejected():
    a = HashResult(hash=ZERO, algorithm=HashAlgorithm.AHASH)
    p = HashResult(hash=ZERO, algorithm=HashAlgorithm.PHASH)
    with pytest.raises(AlgorithmMismatchError):
        compare_hashes(a, p)


def test_threshold_out_of_range():
    with pytest.raises(ValueError):
        compare_hashes(ZERO, ZERO, threshold=65)
    with pytest.raises(ValueError):
        compare_hashes(ZERO, ZERO, threshold=-1)


def test_match_policy_defaults():
    policy = MatchPolicy()
    assert policy.as_dict() == {"aHash": 5, "dHash": 10, "pHash": 10}
    assert policy.threshold_for(HashAlgorithm.PHASH, override=3) == 3


def test_match_policy_uses_algorithm_threshold():
    policy = MatchPolicy(ahash_threshold=5, phash_threshold=10)
    eight_bits = "00000000000000FF"

    a1 = HashResult(hash=ZERO, algorithm=HashAlgorithm.AHASH)
    a2 = HashResult(hash=eight_bits, algorithm=HashAlgorithm.AHASH)
    p1 = HashResult(hash=ZERO, algorithm=HashAlgorithm.PHASH)
    p2 = HashResult(hash=eight_bits, algorithm=HashAlgorithm.PHASH)

    assert policy.compare(a1, a2).is_match is False
    assert policy.compare(p1, p2).is_match is True
