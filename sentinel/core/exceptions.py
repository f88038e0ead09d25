"""
Exception hierarchy for the fingerprint engine, vault and scanner.
"""


class SentinelError(Exception):
    """Base class for all engine errors."""
    pass


class ImageDecodeError(SentinelError):
    """Image source could not be decoded into pixel data."""
    pass


class InvalidHashError(SentinelError):
    """Hash string is not exactly 64 bits of hex."""
    pass


class AlgorithmMismatchError(SentinelError):
    """Two hashes produced by different algorithms were compared."""
    pass


class PersistenceError(SentinelError):
    """Backend I/O failure while writing vault, alert or history records."""
    pass


class AssetNotFoundError(SentinelError):
    """No protected asset exists for the given id."""
    pass


class ScanInProgressError(SentinelError):
    """A monitoring scan is already running on this orchestrator."""
    pass
