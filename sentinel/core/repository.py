"""
Repository interfaces for the fingerprint vault, alert store and scan history,
with thread-safe in-memory implementations.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional

import structlog

from sentinel import config
from sentinel.models.fingerprint import (
    FingerprintSet,
    HashAlgorithm,
    ProtectedAsset,
    VaultMatch,
    VaultRecord,
    normalize_hash,
)
from sentinel.models.monitoring import ContentAlert, MonitoringSession
from sentinel.services.similarity import compare_hashes

logger = structlog.get_logger()


class FingerprintVault(ABC):
    """Persists protected assets and their fingerprint records."""

    @abstractmethod
    def store(self, asset_id: str, hashes: FingerprintSet, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Insert or replace the fingerprint record for ``asset_id``."""

    @abstractmethod
    def all(self) -> List[VaultRecord]:
        """Return every fingerprint record in insertion order."""

    @abstractmethod
    def save_asset(self, asset: ProtectedAsset) -> None:
        """Insert or replace a protected asset record."""

    @abstractmethod
    def get_asset(self, asset_id: str) -> Optional[ProtectedAsset]:
        pass

    @abstractmethod
    def list_assets(self) -> List[ProtectedAsset]:
        pass

    @abstractmethod
    def delete_asset(self, asset_id: str) -> bool:
        """Remove an asset and its fingerprint record. Returns False if unknown."""

    @abstractmethod
    def record_scan(self, asset_id: str, matched: bool, scanned_at: datetime) -> bool:
        """
        Stamp ``last_scanned`` on a stored asset and bump ``match_count`` when matched.

        Only those two fields change, so edits made while a scan runs survive.
        Returns False if the asset no longer exists.
        """

    def search_matches(self, target_hash: str, algorithm: HashAlgorithm, threshold: int) -> List[VaultMatch]:
        """
        Find vault records within ``threshold`` bits of ``target_hash``.

        Returns:
            Matches sorted by similarity, highest first
        """
        algorithm = HashAlgorithm(algorithm)
        target_hash = normalize_hash(target_hash)

        matches = []
        for record in self.all():
            comparison = compare_hashes(target_hash, record.hashes.get(algorithm).hash, threshold)
            if comparison.is_match:
                matches.append(VaultMatch(
                    asset_id=record.asset_id,
                    similarity=comparison.similarity,
                    stored_at=record.stored_at,
                ))

        matches.sort(key=lambda m: m.similarity, reverse=True)
        logger.debug("Vault search completed",
                     algorithm=algorithm.value,
                     threshold=threshold,
                     results_count=len(matches))
        return matches


class AlertStore(ABC):
    """Bounded, most-recent-first log of content alerts."""

    def __init__(self, capacity: int = config.ALERT_CAPACITY):
        self.capacity = capacity

    @abstractmethod
    def save(self, alert: ContentAlert) -> None:
        pass

    @abstractmethod
    def list(self, limit: Optional[int] = None) -> List[ContentAlert]:
        pass

    @abstractmethod
    def mark_read(self, alert_id: str) -> bool:
        pass

    @abstractmethod
    def clear_all(self) -> None:
        pass

    @abstractmethod
    def unread_count(self) -> int:
        pass


class SessionHistory(ABC):
    """Bounded, most-recent-first log of finished monitoring sessions."""

    def __init__(self, capacity: int = config.SCAN_HISTORY_CAPACITY):
        self.capacity = capacity

    @abstractmethod
    def append(self, session: MonitoringSession) -> None:
        pass

    @abstractmethod
    def list(self, limit: Optional[int] = None) -> List[MonitoringSession]:
        pass


class InMemoryFingerprintVault(FingerprintVault):
    def __init__(self):
        self._lock = threading.RLock()
        self._records: Dict[str, VaultRecord] = {}
        self._assets: Dict[str, ProtectedAsset] = {}

    def store(self, asset_id: str, hashes: FingerprintSet, metadata: Optional[Dict[str, Any]] = None) -> None:
        record = VaultRecord(asset_id=asset_id, hashes=hashes, metadata=dict(metadata or {}))
        with self._lock:
            existing = self._records.get(asset_id)
            if existing is not None:
                record.stored_at = existing.stored_at
            self._records[asset_id] = record
        logger.debug("Fingerprint stored", asset_id=asset_id)

    def all(self) -> List[VaultRecord]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._records.values()]

    def save_asset(self, asset: ProtectedAsset) -> None:
        with self._lock:
            self._assets[asset.id] = asset.model_copy(deep=True)

    def get_asset(self, asset_id: str) -> Optional[ProtectedAsset]:
        with self._lock:
            asset = self._assets.get(asset_id)
            return asset.model_copy(deep=True) if asset else None

    def list_assets(self) -> List[ProtectedAsset]:
        with self._lock:
            return [a.model_copy(deep=True) for a in self._assets.values()]

    def delete_asset(self, asset_id: str) -> bool:
        with self._lock:
            removed_asset = self._assets.pop(asset_id, None)
            removed_record = self._records.pop(asset_id, None)
        return removed_asset is not None or removed_record is not None

    def record_scan(self, asset_id: str, matched: bool, scanned_at: datetime) -> bool:
        with self._lock:
            asset = self._assets.get(asset_id)
            if asset is None:
                return False
            asset.last_scanned = scanned_at
            if matched:
                asset.match_count += 1
        return True


class InMemoryAlertStore(AlertStore):
    def __init__(self, capacity: int = config.ALERT_CAPACITY):
        super().__init__(capacity)
        self._lock = threading.RLock()
        self._alerts: List[ContentAlert] = []

    def save(self, alert: ContentAlert) -> None:
        with self._lock:
            self._alerts.insert(0, alert.model_copy(deep=True))
            del self._alerts[self.capacity:]

    def list(self, limit: Optional[int] = None) -> List[ContentAlert]:
        with self._lock:
            alerts = self._alerts if limit is None else self._alerts[:limit]
            return [a.model_copy(deep=True) for a in alerts]

    def mark_read(self, alert_id: str) -> bool:
        with self._lock:
            for alert in self._alerts:
                if alert.id == alert_id:
                    alert.read = True
                    return True
        return False

    def clear_all(self) -> None:
        with self._lock:
            self._alerts.clear()

    def unread_count(self) -> int:
        with self._lock:
            return sum(1 for a in self._alerts if not a.read)


class InMemorySessionHistory(SessionHistory):
    def __init__(self, capacity: int = config.SCAN_HISTORY_CAPACITY):
        super().__init__(capacity)
        self._lock = threading.RLock()
        self._sessions: List[MonitoringSession] = []

    def append(self, session: MonitoringSession) -> None:
        with self._lock:
            self._sessions.insert(0, session.model_copy(deep=True))
            del self._sessions[self.capacity:]

    def list(self, limit: Optional[int] = None) -> List[MonitoringSession]:
        with self._lock:
            sessions = self._sessions if limit is None else self._sessions[:limit]
            return [s.model_copy(deep=True) for s in sessions]


class Stores(NamedTuple):
    vault: FingerprintVault
    alerts: AlertStore
    history: SessionHistory


def create_stores(backend: str = config.STORE_BACKEND) -> Stores:
    """Build the vault, alert store and history for the configured backend."""
    if backend == "memory":
        stores = Stores(InMemoryFingerprintVault(), InMemoryAlertStore(), InMemorySessionHistory())
    elif backend == "postgres":
        from sentinel.core.database import PostgresAlertStore, PostgresFingerprintVault, PostgresSessionHistory
        stores = Stores(PostgresFingerprintVault(), PostgresAlertStore(), PostgresSessionHistory())
    else:
        raise ValueError(f"Unknown store backend: {backend}")

    logger.info("Stores initialized", backend=backend)
    return stores
