"""
PostgreSQL-backed vault, alert store and scan history.
"""

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

import psycopg2
import structlog
from psycopg2 import extras
from psycopg2.pool import SimpleConnectionPool

from sentinel import config
from sentinel.core.exceptions import PersistenceError
from sentinel.core.repository import AlertStore, FingerprintVault, SessionHistory
from sentinel.models.fingerprint import FingerprintSet, HashAlgorithm, HashResult, ProtectedAsset, VaultRecord
from sentinel.models.monitoring import ContentAlert, MonitoringSession

logger = structlog.get_logger()

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS fingerprint_vault (
    asset_id TEXT PRIMARY KEY,
    seq BIGSERIAL,
    ahash CHAR(16) NOT NULL,
    dhash CHAR(16) NOT NULL,
    phash CHAR(16) NOT NULL,
    hashed_at TIMESTAMPTZ NOT NULL,
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    stored_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS protected_assets (
    asset_id TEXT PRIMARY KEY REFERENCES fingerprint_vault (asset_id) ON DELETE CASCADE,
    seq BIGSERIAL,
    filename TEXT NOT NULL,
    thumbnail_ref TEXT,
    uploaded_at TIMESTAMPTZ NOT NULL,
    last_scanned TIMESTAMPTZ,
    match_count INTEGER NOT NULL DEFAULT 0 CHECK (match_count >= 0),
    monitoring_enabled BOOLEAN NOT NULL DEFAULT TRUE
);

CREATE TABLE IF NOT EXISTS content_alerts (
    alert_id TEXT PRIMARY KEY,
    seq BIGSERIAL,
    type TEXT NOT NULL,
    severity TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    target_site TEXT,
    match_url TEXT,
    similarity INTEGER CHECK (similarity BETWEEN 0 AND 100),
    read BOOLEAN NOT NULL DEFAULT FALSE,
    asset_id TEXT
);

CREATE TABLE IF NOT EXISTS scan_sessions (
    session_id TEXT PRIMARY KEY,
    seq BIGSERIAL,
    status TEXT NOT NULL,
    session JSONB NOT NULL,
    archived_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_content_alerts_seq ON content_alerts (seq DESC);
CREATE INDEX IF NOT EXISTS idx_scan_sessions_seq ON scan_sessions (seq DESC);
"""

# Global connection pool
_connection_pool = None
_pool_lock = threading.Lock()


def initialize_connection_pool(dsn: str = config.DB_DSN):
    """Initialize the PostgreSQL connection pool."""
    global _connection_pool
    with _pool_lock:
        if _connection_pool is None:
            try:
                _connection_pool = SimpleConnectionPool(
                    config.DB_MIN_CONNECTIONS,
                    config.DB_MAX_CONNECTIONS,
                    dsn
                )
                logger.info("Connection pool initialized",
                            min_connections=config.DB_MIN_CONNECTIONS,
                            max_connections=config.DB_MAX_CONNECTIONS)
            except psycopg2.Error as e:
                logger.error("Failed to initialize connection pool", error=str(e))
                raise PersistenceError(f"Could not connect to database: {e}") from e


@contextmanager
def get_db_connection():
    """Context manager for pooled connections with rollback on failure."""
    if _connection_pool is None:
        initialize_connection_pool()

    conn = None
    try:
        conn = _connection_pool.getconn()
        yield conn
    except Exception as e:
        if conn:
            conn.rollback()
        logger.error("Database operation failed", error=str(e))
        raise
    finally:
        if conn:
            _connection_pool.putconn(conn)


@contextmanager
def _transaction(operation: str, **context):
    """Run a unit of work, committing on success and mapping driver errors."""
    try:
        with get_db_connection() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                yield cur
            conn.commit()
    except psycopg2.Error as e:
        logger.error(f"Failed to {operation}", error=str(e), **context)
        raise PersistenceError(f"Failed to {operation}: {e}") from e


def create_schema() -> None:
    """Create tables and indexes if they don't exist."""
    with _transaction("create schema") as cur:
        cur.execute(SCHEMA_SQL)
    logger.info("Database schema ensured")


def check_database_connection() -> bool:
    """Check if the database connection is working."""
    try:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                result = cur.fetchone()
        return result[0] == 1
    except Exception as e:
        logger.error("Database connection check failed", error=str(e))
        return False


def _fingerprints_from_row(row: Dict[str, Any]) -> FingerprintSet:
    hashed_at = row["hashed_at"]
    return FingerprintSet(
        ahash=HashResult(hash=row["ahash"], algorithm=HashAlgorithm.AHASH, timestamp=hashed_at),
        dhash=HashResult(hash=row["dhash"], algorithm=HashAlgorithm.DHASH, timestamp=hashed_at),
        phash=HashResult(hash=row["phash"], algorithm=HashAlgorithm.PHASH, timestamp=hashed_at),
    )


class PostgresFingerprintVault(FingerprintVault):
    """Vault persisted in the ``fingerprint_vault`` and ``protected_assets`` tables."""

    def store(self, asset_id: str, hashes: FingerprintSet, metadata: Optional[Dict[str, Any]] = None) -> None:
        sql = """
        INSERT INTO fingerprint_vault (asset_id, ahash, dhash, phash, hashed_at, metadata)
        VALUES (%s, %s, %s, %s, %s, %s)
        ON CONFLICT (asset_id) DO UPDATE SET
            ahash = EXCLUDED.ahash,
            dhash = EXCLUDED.dhash,
            phash = EXCLUDED.phash,
            hashed_at = EXCLUDED.hashed_at,
            metadata = EXCLUDED.metadata
        """
        with _transaction("store fingerprints", asset_id=asset_id) as cur:
            cur.execute(sql, (
                asset_id,
                hashes.ahash.hash,
                hashes.dhash.hash,
                hashes.phash.hash,
                hashes.phash.timestamp,
                extras.Json(dict(metadata or {})),
            ))
        logger.debug("Fingerprints stored", asset_id=asset_id)

    def all(self) -> List[VaultRecord]:
        sql = """
        SELECT asset_id, ahash, dhash, phash, hashed_at, metadata, stored_at
        FROM fingerprint_vault
        ORDER BY seq
        """
        with _transaction("read vault") as cur:
            cur.execute(sql)
            rows = cur.fetchall()

        return [
            VaultRecord(
                asset_id=row["asset_id"],
                hashes=_fingerprints_from_row(row),
                metadata=row["metadata"] or {},
                stored_at=row["stored_at"],
            )
            for row in rows
        ]

    def save_asset(self, asset: ProtectedAsset) -> None:
        sql = """
        INSERT INTO protected_assets (
            asset_id, filename, thumbnail_ref, uploaded_at,
            last_scanned, match_count, monitoring_enabled
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (asset_id) DO UPDATE SET
            filename = EXCLUDED.filename,
            thumbnail_ref = EXCLUDED.thumbnail_ref,
            last_scanned = EXCLUDED.last_scanned,
            match_count = EXCLUDED.match_count,
            monitoring_enabled = EXCLUDED.monitoring_enabled
        """
        with _transaction("save asset", asset_id=asset.id) as cur:
            cur.execute(sql, (
                asset.id, asset.filename, asset.thumbnail_ref, asset.uploaded_at,
                asset.last_scanned, asset.match_count, asset.monitoring_enabled
            ))
        logger.debug("Asset saved", asset_id=asset.id, match_count=asset.match_count)

    def _select_assets(self, where: str = "", params: tuple = ()) -> List[ProtectedAsset]:
        sql = f"""
        SELECT a.asset_id, a.filename, a.thumbnail_ref, a.uploaded_at, a.last_scanned,
               a.match_count, a.monitoring_enabled,
               f.ahash, f.dhash, f.phash, f.hashed_at
        FROM protected_assets a
        JOIN fingerprint_vault f ON f.asset_id = a.asset_id
        {where}
        ORDER BY a.seq
        """
        with _transaction("read assets") as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()

        return [
            ProtectedAsset(
                id=row["asset_id"],
                filename=row["filename"],
                thumbnail_ref=row["thumbnail_ref"],
                hashes=_fingerprints_from_row(row),
                uploaded_at=row["uploaded_at"],
                last_scanned=row["last_scanned"],
                match_count=row["match_count"],
                monitoring_enabled=row["monitoring_enabled"],
            )
            for row in rows
        ]

    def get_asset(self, asset_id: str) -> Optional[ProtectedAsset]:
        assets = self._select_assets("WHERE a.asset_id = %s", (asset_id,))
        return assets[0] if assets else None

    def list_assets(self) -> List[ProtectedAsset]:
        return self._select_assets()

    def delete_asset(self, asset_id: str) -> bool:
        # protected_assets rows cascade from the vault record
        with _transaction("delete asset", asset_id=asset_id) as cur:
            cur.execute("DELETE FROM fingerprint_vault WHERE asset_id = %s", (asset_id,))
            deleted = cur.rowcount > 0
        logger.info("Asset deleted", asset_id=asset_id, deleted=deleted)
        return deleted

    def record_scan(self, asset_id: str, matched: bool, scanned_at: datetime) -> bool:
        sql = """
        UPDATE protected_assets
        SET last_scanned = %s, match_count = match_count + %s
        WHERE asset_id = %s
        """
        with _transaction("record scan", asset_id=asset_id) as cur:
            cur.execute(sql, (scanned_at, 1 if matched else 0, asset_id))
            return cur.rowcount > 0


class PostgresAlertStore(AlertStore):
    """Alert log persisted in ``content_alerts``, trimmed to capacity on insert."""

    def save(self, alert: ContentAlert) -> None:
        insert_sql = """
        INSERT INTO content_alerts (
            alert_id, type, severity, created_at, title, description,
            target_site, match_url, similarity, read, asset_id
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        trim_sql = """
        DELETE FROM content_alerts
        WHERE seq NOT IN (SELECT seq FROM content_alerts ORDER BY seq DESC LIMIT %s)
        """
        with _transaction("save alert", alert_id=alert.id) as cur:
            cur.execute(insert_sql, (
                alert.id, alert.type.value, alert.severity.value, alert.timestamp,
                alert.title, alert.description, alert.target_site, alert.match_url,
                alert.similarity, alert.read, alert.asset_id
            ))
            cur.execute(trim_sql, (self.capacity,))

    def list(self, limit: Optional[int] = None) -> List[ContentAlert]:
        sql = """
        SELECT alert_id, type, severity, created_at, title, description,
               target_site, match_url, similarity, read, asset_id
        FROM content_alerts
        ORDER BY seq DESC
        LIMIT %s
        """
        with _transaction("read alerts") as cur:
            cur.execute(sql, (limit if limit is not None else self.capacity,))
            rows = cur.fetchall()

        return [
            ContentAlert(
                id=row["alert_id"],
                type=row["type"],
                severity=row["severity"],
                timestamp=row["created_at"],
                title=row["title"],
                description=row["description"],
                target_site=row["target_site"],
                match_url=row["match_url"],
                similarity=row["similarity"],
                read=row["read"],
                asset_id=row["asset_id"],
            )
            for row in rows
        ]

    def mark_read(self, alert_id: str) -> bool:
        with _transaction("mark alert read", alert_id=alert_id) as cur:
            cur.execute("UPDATE content_alerts SET read = TRUE WHERE alert_id = %s", (alert_id,))
            return cur.rowcount > 0

    def clear_all(self) -> None:
        with _transaction("clear alerts") as cur:
            cur.execute("DELETE FROM content_alerts")
        logger.info("Alerts cleared")

    def unread_count(self) -> int:
        with _transaction("count unread alerts") as cur:
            cur.execute("SELECT COUNT(*) AS unread FROM content_alerts WHERE NOT read")
            return cur.fetchone()["unread"]


class PostgresSessionHistory(SessionHistory):
    """Finished scan sessions persisted in ``scan_sessions``."""

    def append(self, session: MonitoringSession) -> None:
        insert_sql = """
        INSERT INTO scan_sessions (session_id, status, session)
        VALUES (%s, %s, %s)
        ON CONFLICT (session_id) DO UPDATE SET
            status = EXCLUDED.status,
            session = EXCLUDED.session
        """
        trim_sql = """
        DELETE FROM scan_sessions
        WHERE seq NOT IN (SELECT seq FROM scan_sessions ORDER BY seq DESC LIMIT %s)
        """
        with _transaction("archive session", session_id=session.id) as cur:
            cur.execute(insert_sql, (
                session.id, session.status.value, extras.Json(session.model_dump(mode="json"))
            ))
            cur.execute(trim_sql, (self.capacity,))

    def list(self, limit: Optional[int] = None) -> List[MonitoringSession]:
        sql = "SELECT session FROM scan_sessions ORDER BY seq DESC LIMIT %s"
        with _transaction("read scan history") as cur:
            cur.execute(sql, (limit if limit is not None else self.capacity,))
            rows = cur.fetchall()
        return [MonitoringSession.model_validate(row["session"]) for row in rows]
