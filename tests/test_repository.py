import pytest
from pydantic import ValidationError

from sentinel.core.repository import InMemoryAlertStore, InMemoryFingerprintVault, InMemorySessionHistory
from sentinel.core.utils import utcnow
from sentinel.models.fingerprint import FingerprintSet, HashAlgorithm, HashResult, ProtectedAsset
from sentinel.models.monitoring import AlertSeverity, AlertType, ContentAlert, MonitoringSession


def fingerprints(ahash="0000000000000000", dhash="0000000000000000", phash="0000000000000000"):
    return FingerprintSet(
        ahash=HashResult(hash=ahash, algorithm=HashAlgorithm.AHASH),
        dhash=HashResult(hash=dhash, algorithm=HashAlgorithm.DHASH),
        phash=HashResult(hash=phash, algorithm=HashAlgorithm.PHASH),
    )


def alert(title: str) -> ContentAlert:
    return ContentAlert(type=AlertType.SCAN_COMPLETE, severity=AlertSeverity.INFO, title=title, description="")


def test_fingerprint_set_rejects_wrong_algorithm():
    with pytest.raises(ValidationError):
        FingerprintSet(
            ahash=HashResult(hash="0000000000000000", algorithm=HashAlgorithm.PHASH),
            dhash=HashResult(hash="0000000000000000", algorithm=HashAlgorithm.DHASH),
            phash=HashResult(hash="0000000000000000", algorithm=HashAlgorithm.PHASH),
        )


def test_fingerprint_set_requires_all_algorithms():
    with pytest.raises(ValidationError):
        FingerprintSet(ahash=HashResult(hash="0000000000000000", algorithm=HashAlgorithm.AHASH))


def test_search_empty_vault():
    assert InMemoryFingerprintVault().search_matches("0123456789ABCDEF", HashAlgorithm.PHASH, 10) == []


def test_store_is_idempotent_upsert():
    vault = InMemoryFingerprintVault()
    vault.store("asset_1", fingerprints(), {"filename": "a.png"})
    first_stored_at = vault.all()[0].stored_at
    vault.store("asset_1", fingerprints(phash="00000000000000FF"), {"filename": "b.png"})

    records = vault.all()
    assert len(records) == 1
    assert records[0].hashes.phash.hash == "00000000000000FF"
    assert records[0].metadata == {"filename": "b.png"}
    assert records[0].stored_at == first_stored_at


def test_search_orders_by_similarity_and_filters_threshold():
    vault = InMemoryFingerprintVault()
    vault.store("far", fingerprints(phash="FFFFFFFFFFFFFFFF"))
    vault.store("near", fingerprints(phash="000000000000000F"))   # 4 bits
    vault.store("exact", fingerprints(phash="0000000000000000"))
    vault.store("close", fingerprints(phash="0000000000000001"))  # 1 bit

    matches = vault.search_matches("0000000000000000", HashAlgorithm.PHASH, 10)

    assert [m.asset_id for m in matches] == ["exact", "close", "near"]
    similarities = [m.similarity for m in matches]
    assert similarities == sorted(similarities, reverse=True)
    assert matches[0].similarity == 100


def test_search_uses_requested_algorithm():
    vault = InMemoryFingerprintVault()
    vault.store("asset_1", fingerprints(ahash="FFFFFFFFFFFFFFFF"))
    assert vault.search_matches("0000000000000000", HashAlgorithm.AHASH, 5) == []
    assert len(vault.search_matches("0000000000000000", HashAlgorithm.DHASH, 5)) == 1


def test_asset_records_and_delete():
    vault = InMemoryFingerprintVault()
    asset = ProtectedAsset(id="asset_1", filename="a.png", hashes=fingerprints())
    vault.store(asset.id, asset.hashes)
    vault.save_asset(asset)

    stored = vault.get_asset("asset_1")
    assert stored == asset
    stored.match_count = 3
    assert vault.get_asset("asset_1").match_count == 0

    assert vault.delete_asset("asset_1") is True
    assert vault.get_asset("asset_1") is None
    assert vault.all() == []
    assert vault.delete_asset("asset_1") is False


def test_record_scan_changes_only_scan_fields():
    vault = InMemoryFingerprintVault()
    vault.store("a1", fingerprints())
    vault.save_asset(ProtectedAsset(id="a1", filename="a.png", hashes=fingerprints(), monitoring_enabled=False))
    scanned_at = utcnow()

    assert vault.record_scan("a1", matched=True, scanned_at=scanned_at) is True
    assert vault.record_scan("a1", matched=False, scanned_at=scanned_at) is True

    stored = vault.get_asset("a1")
    assert stored.match_count == 1
    assert stored.last_scanned == scanned_at
    assert stored.monitoring_enabled is False

    vault.delete_asset("a1")
    assert vault.record_scan("a1", matched=True, scanned_at=scanned_at) is False
    assert vault.get_asset("a1") is None


def test_alert_store_is_most_recent_first():
    store = InMemoryAlertStore()
    store.save(alert("first"))
    store.save(alert("second"))
    assert [a.title for a in store.list()] == ["second", "first"]
    assert [a.title for a in store.list(limit=1)] == ["second"]


def test_alert_store_evicts_oldest_beyond_capacity():
    store = InMemoryAlertStore(capacity=100)
    for i in range(101):
        store.save(alert(f"alert {i}"))

    alerts = store.list()
    assert len(alerts) == 100
    assert alerts[0].title == "alert 100"
    assert alerts[-1].title == "alert 1"


def test_mark_read_and_unread_count():
    store = InMemoryAlertStore()
    first, second = alert("first"), alert("second")
    store.save(first)
    store.save(second)
    assert store.unread_count() == 2

    assert store.mark_read(first.id) is True
    assert store.unread_count() == 1
    assert store.mark_read("alert_missing") is False


def test_clear_all():
    store = InMemoryAlertStore()
    store.save(alert("first"))
    store.clear_all()
    assert store.list() == []
    assert store.unread_count() == 0


def test_session_history_is_bounded():
    history = InMemorySessionHistory(capacity=3)
    sessions = [MonitoringSession() for _ in range(5)]
    for session in sessions:
        history.append(session)

    assert [s.id for s in history.list()] == [s.id for s in reversed(sessions[2:])]
