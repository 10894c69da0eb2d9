from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from src.offload.assets.assets_models import AssetFlag
from src.offload.main import create_app
from tests.helpers.media_files import webp_like_bytes, write_file
from tests.mocks.http import DummyAsyncClient, DummyHTTPResponse, install_client


@pytest.fixture
def client(app_config) -> TestClient:
    return TestClient(create_app(app_config))


def test_queue_endpoints_add_list_and_clear(client: TestClient) -> None:
    response = client.post("/api/queues/migration/items", json={"paths": ["a.webp", "b.webp", "a.webp"]})
    assert response.status_code == 200
    assert response.json() == {"queue": "migration", "added": 2, "size": 2}

    listing = client.get("/api/queues/migration").json()
    assert listing["items"] == ["a.webp", "b.webp"]

    cleared = client.delete("/api/queues/migration").json()
    assert cleared["cleared"] == 2
    assert client.get("/api/queues/migration").json()["size"] == 0


def test_unknown_queue_is_404(client: TestClient) -> None:
    response = client.get("/api/queues/thumbnails")

    assert response.status_code == 404
    assert response.json()["detail"]["reason"] == "unknown_queue"


def test_scan_and_stats_endpoints(client: TestClient, app_config, media_root) -> None:
    write_file(media_root, "2024/01/a.webp", webp_like_bytes(2048))
    client.app.state.asset_repo.add_asset(path="2024/01/a.webp", mime_type="image/webp")

    scanned = client.post("/api/queues/migration/scan").json()
    stats = client.get("/api/stats/migration").json()
    check = client.get("/api/eligibility", params={"path": "2024/01/a.webp"}).json()

    assert scanned["added"] == 1
    assert stats["eligible_total"] == 1
    assert stats["not_migrated"] == 1
    assert check["migration"] == {"eligible": True, "reason": "eligible"}
    assert check["optimization"]["reason"] == "below_size_threshold"


def test_process_without_credentials_is_conflict(app_config) -> None:
    app_config.optimizer.api_key = ""
    client = TestClient(create_app(app_config))

    response = client.post("/api/optimization/process")

    assert response.status_code == 409
    assert response.json()["detail"]["reason"] == "not_configured"


def test_migration_process_runs_a_batch(monkeypatch, client: TestClient, media_root) -> None:
    write_file(media_root, "2024/01/a.webp", webp_like_bytes(2048))
    client.app.state.asset_repo.add_asset(path="2024/01/a.webp", mime_type="image/webp")
    install_client(monkeypatch, DummyAsyncClient(put=[DummyHTTPResponse(201)]))

    response = client.post("/api/migration/process")

    assert response.status_code == 200
    body = response.json()
    assert body["processed"] == 1
    assert body["continue"] is False


def test_asset_audit_routes(monkeypatch, client: TestClient, media_root) -> None:
    repo = client.app.state.asset_repo
    asset_id = repo.add_asset(
        path="2024/01/a.webp",
        mime_type="image/webp",
        meta={AssetFlag.MIGRATED: True, AssetFlag.BUNNY_URL: "https://media-zone.b-cdn.net/2024/01/a.webp"},
    )
    install_client(monkeypatch, DummyAsyncClient(delete=[DummyHTTPResponse(200)]))

    verify = client.get(f"/api/assets/{asset_id}/verify").json()
    summary = client.get("/api/assets/verify").json()
    deleted = client.delete(f"/api/assets/{asset_id}/remote").json()

    assert verify["status"] == "complete"
    assert summary["summary"] == {"complete": 1}
    assert deleted == {"asset_id": asset_id, "success": True}
    assert client.get("/api/assets/999/verify").status_code == 404


def test_settings_update_changes_runtime_limits(client: TestClient, app_config) -> None:
    response = client.put("/api/settings/", json={"max_file_size_kb": 300, "auto_migrate": True})

    assert response.status_code == 200
    assert response.json()["max_file_size_kb"] == 300
    assert app_config.limits.max_file_size_kb == 300
    assert app_config.limits.auto_migrate is True
    assert client.get("/api/settings/").json()["auto_migrate"] is True


def test_config_status_route(client: TestClient) -> None:
    body = client.get("/api/config/status").json()

    assert body["optimizer"]["configured"] is True
    assert body["storage"]["storage_zone"] == "media-zone"
