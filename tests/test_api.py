import pytest
from fastapi.testclient import TestClient

from sentinel.main import create_app
from sentinel.models.monitoring import CrawlResult
from sentinel.services.crawler import ScriptedCrawler

from conftest import make_target, png_bytes, random_image


@pytest.fixture
def crawler():
    return ScriptedCrawler()


@pytest.fixture
def client(stores, crawler):
    app = create_app(stores=stores, crawler=crawler, targets=[make_target(1), make_target(2)])
    with TestClient(app) as test_client:
        yield test_client


def upload(client, seed, filename="art.png"):
    return client.post(
        "/assets",
        files={"file": (filename, png_bytes(random_image(seed)), "image/png")},
        data={"description": "test upload"},
    )


def test_root_and_health(client):
    assert client.get("/").json()["name"] == "Sentinel API"

    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["components"]["thresholds"] == {"aHash": 5, "dHash": 10, "pHash": 10}
    assert health["components"]["scan_running"] is False


def test_register_and_list_assets(client):
    response = upload(client, 1)
    assert response.status_code == 201
    asset = response.json()["asset"]
    assert set(asset["hashes"]) == {"ahash", "dhash", "phash"}
    assert len(asset["hashes"]["phash"]["hash"]) == 16

    listed = client.get("/assets").json()
    assert [a["id"] for a in listed] == [asset["id"]]
    assert client.get(f"/assets/{asset['id']}").json()["filename"] == "art.png"
    assert len(client.get("/vault").json()) == 1


def test_register_rejects_unsupported_type(client):
    response = client.post("/assets", files={"file": ("notes.txt", b"hello", "text/plain")})
    assert response.status_code == 415


def test_register_undecodable_image(client):
    response = client.post("/assets", files={"file": ("broken.png", b"not a png", "image/png")})
    assert response.status_code == 422
    assert response.json()["error"] == "ImageDecodeError"


def test_unknown_asset_is_404(client):
    assert client.get("/assets/asset_missing").status_code == 404
    assert client.delete("/assets/asset_missing").status_code == 404


def test_toggle_and_delete_asset(client):
    asset_id = upload(client, 2).json()["asset"]["id"]

    toggled = client.patch(f"/assets/{asset_id}/monitoring", json={"enabled": False})
    assert toggled.status_code == 200
    assert toggled.json()["monitoring_enabled"] is False

    assert client.delete(f"/assets/{asset_id}").status_code == 204
    assert client.get(f"/assets/{asset_id}").status_code == 404


def test_compare_hashes(client):
    response = client.post("/hashes/compare", json={
        "hash1": "FFFFFFFFFFFFFFFF",
        "hash2": "FFFFFFFFFFFFFFFE",
        "algorithm": "pHash",
    })
    assert response.status_code == 200
    assert response.json() == {
        "hash1": "FFFFFFFFFFFFFFFF",
        "hash2": "FFFFFFFFFFFFFFFE",
        "distance": 1,
        "similarity": 98,
        "is_match": True,
    }


def test_compare_invalid_hash(client):
    response = client.post("/hashes/compare", json={"hash1": "XYZ", "hash2": "FFFFFFFFFFFFFFFF"})
    assert response.status_code == 400
    assert response.json()["error"] == "InvalidHashError"


def test_hash_upload_and_vault_search(client):
    asset_id = upload(client, 3).json()["asset"]["id"]
    hashes = client.post(
        "/hashes", files={"file": ("again.png", png_bytes(random_image(3)), "image/png")}
    ).json()

    matches = client.post("/vault/search", json={"hash": hashes["phash"]["hash"]}).json()
    assert matches[0]["asset_id"] == asset_id
    assert matches[0]["similarity"] == 100


def test_scan_and_alerts(client, crawler):
    asset_id = upload(client, 4).json()["asset"]["id"]
    crawler.results[("target_2", asset_id)] = CrawlResult(
        found=True, similarity=87.6, url="https://site-2.example/copy.png"
    )

    session = client.post("/scans").json()
    assert session["status"] == "completed"
    assert session["total_targets"] == 2
    assert session["matches_found"] == 1
    assert session["progress"] == 100
    assert [s["id"] for s in client.get("/scans").json()] == [session["id"]]

    body = client.get("/alerts").json()
    assert body["unread_count"] == 2
    summary, match = body["alerts"]
    assert summary["title"] == "Scan Complete"
    assert match["similarity"] == 88
    assert match["target_site"] == "Site-2"

    assert client.post(f"/alerts/{match['id']}/read").status_code == 204
    assert client.get("/alerts").json()["unread_count"] == 1
    assert client.post("/alerts/alert_missing/read").status_code == 404

    assert client.delete("/alerts").status_code == 204
    assert client.get("/alerts").json() == {"alerts": [], "unread_count": 0}


def test_targets(client):
    assert [t["id"] for t in client.get("/targets").json()] == ["target_1", "target_2"]
