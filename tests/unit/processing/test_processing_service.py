from __future__ import annotations

import pytest

from src.offload.dependencies import Services, build_services
from src.offload.queue.queue_models import QueueName
from tests.helpers.media_files import png_bytes, write_file
from tests.mocks.http import DummyAsyncClient, DummyHTTPResponse, install_client


@pytest.fixture
def services(app_config) -> Services:
    return build_services(app_config)


@pytest.mark.asyncio
async def test_vanished_files_are_skipped_and_dequeued(monkeypatch, services, media_root) -> None:
    services.assets.add_asset(path="2024/01/gone.jpg", mime_type="image/jpeg")
    services.optimization_queue.add("2024/01/gone.jpg")
    client = install_client(monkeypatch, DummyAsyncClient())

    report = await services.processing.process_optimization_batch()

    assert report.skipped == 1
    assert report.remaining == 0
    assert services.optimization_queue.size() == 0
    assert client.calls == []


@pytest.mark.asyncio
async def test_empty_library_reports_nothing_to_process(services) -> None:
    report = await services.processing.process_migration_batch()

    assert report.success is True
    assert report.continue_processing is False
    assert report.progress == 100
    assert "Nothing to process" in report.messages


@pytest.mark.asyncio
async def test_retry_cap_evicts_after_three_failed_batches(monkeypatch, services, media_root) -> None:
    write_file(media_root, "2024/01/a.png", png_bytes())
    services.assets.add_asset(path="2024/01/a.png", mime_type="image/png")
    services.optimization_queue.add("2024/01/a.png")
    install_client(
        monkeypatch,
        DummyAsyncClient(post=[DummyHTTPResponse(429, text="") for _ in range(3)]),
    )

    reports = [await services.processing.process_optimization_batch() for _ in range(3)]

    assert [report.evicted for report in reports] == [[], [], ["2024/01/a.png"]]
    assert services.optimization_queue.size() == 0


def test_reinitialize_rebuilds_queue_from_scan(services, media_root) -> None:
    write_file(media_root, "2024/01/a.jpg", b"0" * 2048)
    services.assets.add_asset(path="2024/01/a.jpg", mime_type="image/jpeg")
    services.optimization_queue.add_batch(["stale.jpg", "other.jpg"])

    result = services.processing.reinitialize_queue("optimization")

    assert result == {"queue": "optimization", "cleared": 2, "added": 1, "size": 1}
    status = services.processing.queue_status(QueueName.OPTIMIZATION)
    assert status["items"] == ["2024/01/a.jpg"]
    assert status["processed"] == 0


def test_config_status_lists_both_services(services, app_config) -> None:
    status = services.processing.check_config_status()

    assert status["optimizer"]["configured"] is True
    assert status["optimizer"]["endpoint"] == "https://api-us.nofb.nexwinds.com"
    assert status["storage"]["configured"] is True
    assert status["storage"]["public_host"] == "media-zone.b-cdn.net"
    assert status["max_file_size_kb"] == app_config.limits.max_file_size_kb


@pytest.mark.asyncio
async def test_connection_test_reports_each_service(monkeypatch, services) -> None:
    install_client(
        monkeypatch,
        DummyAsyncClient(
            get=[DummyHTTPResponse(200, {"credits": 10}), DummyHTTPResponse(404)],
        ),
    )

    result = await services.processing.test_connections()

    assert result["optimizer"]["ok"] is True
    assert result["optimizer"]["account"] == {"credits": 10}
    assert result["storage"] == {"ok": False, "message": "storage zone not found"}
