from __future__ import annotations

import pytest

from src.offload.assets.assets_models import AssetFlag
from src.offload.dependencies import Services, build_services
from tests.helpers.media_files import png_base64, png_bytes, write_file
from tests.mocks.http import DummyAsyncClient, DummyHTTPResponse, install_client


@pytest.fixture
def services(app_config) -> Services:
    return build_services(app_config)


def add_png(services: Services, media_root, relative: str) -> int:
    write_file(media_root, relative, png_bytes((120, 120), (10, 200, 10)))
    return services.assets.add_asset(path=relative, mime_type="image/png")


def success_result(name: str, target: str = "png") -> dict:
    return {
        "success": True,
        "file": name,
        "data": {
            "base64": f"data:image/{target};base64,{png_base64((32, 32))}",
            "targetFormat": target,
            "originalSize": 5000,
            "compressedSize": 900,
            "optimizedQuality": 80,
        },
    }


@pytest.mark.asyncio
async def test_partial_success_dequeues_only_the_optimized_file(monkeypatch, services, media_root) -> None:
    first = add_png(services, media_root, "2024/01/a.png")
    second = add_png(services, media_root, "2024/01/b.png")
    services.optimization_queue.add_batch(["2024/01/a.png", "2024/01/b.png"])
    client = install_client(
        monkeypatch,
        DummyAsyncClient(
            post=[
                DummyHTTPResponse(
                    200,
                    {
                        "success": True,
                        "results": [
                            success_result("a.png"),
                            {"success": False, "file": "b.png", "error": "rate limited"},
                        ],
                    },
                )
            ]
        ),
    )

    report = await services.processing.process_optimization_batch()

    assert report.success is True
    assert report.processed == 1
    assert report.failed == 1
    assert report.remaining == 1
    assert report.continue_processing is True
    assert report.progress == 50
    assert services.optimization_queue.get_all() == ["2024/01/b.png"]
    assert services.optimization_queue.repo.retry_counts("optimization") == {"2024/01/b.png": 1}
    assert services.assets.get_flag(first, AssetFlag.OPTIMIZED) is True
    assert services.assets.get_flag(first, AssetFlag.OPTIMIZATION_STATS)["compressedSize"] == 900
    assert services.assets.get_flag(second, AssetFlag.OPTIMIZED) is None
    assert (media_root / "2024/01/a.png").read_bytes() == png_bytes((32, 32))
    sent = client.calls_for("post")[0]["json"]["images"]
    assert [image["file"] for image in sent] == ["a.png", "b.png"]
    assert sent[0]["imageData"].startswith("data:image/png;base64,")


@pytest.mark.asyncio
async def test_empty_results_keep_files_queued_and_count_an_attempt(monkeypatch, services, media_root) -> None:
    add_png(services, media_root, "2024/01/a.png")
    add_png(services, media_root, "2024/01/b.png")
    services.optimization_queue.add_batch(["2024/01/a.png", "2024/01/b.png"])
    install_client(
        monkeypatch,
        DummyAsyncClient(post=[DummyHTTPResponse(200, {"success": True, "processed": 0, "results": []})]),
    )

    report = await services.processing.process_optimization_batch()

    assert report.processed == 0
    assert report.failed == 0
    assert report.evicted == []
    assert services.optimization_queue.get_all() == ["2024/01/a.png", "2024/01/b.png"]
    assert services.optimization_queue.repo.retry_counts("optimization") == {"2024/01/a.png": 1, "2024/01/b.png": 1}


@pytest.mark.asyncio
async def test_repeated_empty_results_evict_at_the_retry_cap(monkeypatch, services, media_root) -> None:
    asset_id = add_png(services, media_root, "2024/01/a.png")
    services.optimization_queue.add("2024/01/a.png")
    empty = {"success": True, "results": []}
    install_client(
        monkeypatch,
        DummyAsyncClient(post=[DummyHTTPResponse(200, empty) for _ in range(3)]),
    )

    reports = [await services.processing.process_optimization_batch() for _ in range(3)]

    assert [report.evicted for report in reports] == [[], [], ["2024/01/a.png"]]
    assert reports[-1].continue_processing is False
    assert services.optimization_queue.get_all() == []
    assert services.assets.get_flag(asset_id, AssetFlag.OPTIMIZED) is None


@pytest.mark.asyncio
async def test_transport_failure_keeps_batch_and_counts_retry(monkeypatch, services, media_root) -> None:
    add_png(services, media_root, "2024/01/a.png")
    services.optimization_queue.add("2024/01/a.png")
    install_client(monkeypatch, DummyAsyncClient(post=[DummyHTTPResponse(200, text='{"success": true, "results": [')]))

    report = await services.processing.process_optimization_batch()

    assert report.success is False
    assert report.error == "remote_failure"
    assert services.optimization_queue.get_all() == ["2024/01/a.png"]
    assert services.optimization_queue.repo.retry_counts("optimization") == {"2024/01/a.png": 1}


@pytest.mark.asyncio
async def test_format_change_moves_primary_and_rewrites_references(monkeypatch, services, media_root) -> None:
    write_file(media_root, "2024/01/photo.jpg", b"\xff\xd8" + b"\x01" * 5000)
    asset_id = services.assets.add_asset(path="2024/01/photo.jpg", mime_type="image/jpeg")
    field_id = services.content.add_field(
        name="post_content",
        value='<img src="https://example.test/uploads/2024/01/photo.jpg">',
    )
    services.optimization_queue.add("2024/01/photo.jpg")
    install_client(
        monkeypatch,
        DummyAsyncClient(post=[DummyHTTPResponse(200, {"success": True, "results": [success_result("photo.jpg")]})]),
    )

    assert await services.optimizer.optimize_batch(["2024/01/photo.jpg"]) == 1

    asset = services.assets.get_asset(asset_id)
    assert asset is not None
    assert asset.path == "2024/01/photo.png"
    assert asset.mime_type == "image/png"
    assert asset.meta[AssetFlag.ORIGINAL_PATH] == "2024/01/photo.jpg"
    assert not (media_root / "2024/01/photo.jpg").exists()
    assert (media_root / "2024/01/photo.png").is_file()
    assert services.content.get_field(field_id).value == '<img src="https://example.test/uploads/2024/01/photo.png">'


@pytest.mark.asyncio
async def test_invalid_image_data_fails_only_that_file(monkeypatch, services, media_root) -> None:
    add_png(services, media_root, "2024/01/a.png")
    bad = success_result("a.png")
    bad["data"]["base64"] = "AAAA"
    install_client(monkeypatch, DummyAsyncClient(post=[DummyHTTPResponse(200, {"success": True, "results": [bad]})]))

    outcome = await services.optimizer.process_batch(["2024/01/a.png"])

    assert outcome.failed == ["2024/01/a.png"]
    assert outcome.transport_failed is False
    assert (media_root / "2024/01/a.png").read_bytes() == png_bytes((120, 120), (10, 200, 10))


@pytest.mark.asyncio
async def test_ineligible_files_are_dropped_before_the_request(monkeypatch, services, media_root) -> None:
    asset_id = add_png(services, media_root, "2024/01/a.png")
    services.assets.set_flag(asset_id, AssetFlag.OPTIMIZED, True)
    client = install_client(monkeypatch, DummyAsyncClient())

    outcome = await services.optimizer.process_batch(["2024/01/a.png", "2024/01/unknown.png"])

    assert outcome.dropped == ["2024/01/a.png", "2024/01/unknown.png"]
    assert client.calls == []


@pytest.mark.asyncio
async def test_auto_migrate_queues_small_optimized_file(monkeypatch, services, media_root, app_config) -> None:
    app_config.limits.auto_migrate = True
    add_png(services, media_root, "2024/01/a.png")
    install_client(
        monkeypatch,
        DummyAsyncClient(post=[DummyHTTPResponse(200, {"success": True, "results": [success_result("a.png")]})]),
    )

    await services.optimizer.process_batch(["2024/01/a.png"])

    assert services.migration_queue.get_all() == ["2024/01/a.png"]


@pytest.mark.asyncio
async def test_missing_api_key_is_reported_as_not_configured(app_config, media_root) -> None:
    app_config.optimizer.api_key = ""
    services = build_services(app_config)
    add_png(services, media_root, "2024/01/a.png")
    services.optimization_queue.add("2024/01/a.png")

    report = await services.processing.process_optimization_batch()

    assert report.success is False
    assert report.error == "not_configured"
    assert report.continue_processing is False
    assert services.optimization_queue.get_all() == ["2024/01/a.png"]
    assert services.optimization_queue.repo.retry_counts("optimization") == {}


@pytest.mark.asyncio
async def test_format_change_keeps_old_variants_for_migration(monkeypatch, services, media_root) -> None:
    write_file(media_root, "2024/01/photo.jpg", b"\xff\xd8" + b"\x01" * 5000)
    write_file(media_root, "2024/01/photo-300x300.jpg", b"\xff\xd8" + b"\x02" * 900)
    write_file(media_root, "2024/01/photo-150x150.jpg", b"\xff\xd8" + b"\x03" * 400)
    asset_id = services.assets.add_asset(
        path="2024/01/photo.jpg",
        mime_type="image/jpeg",
        sizes={"medium": "photo-300x300.jpg"},
    )
    client = install_client(
        monkeypatch,
        DummyAsyncClient(
            post=[DummyHTTPResponse(200, {"success": True, "results": [success_result("photo.jpg")]})],
            put=[DummyHTTPResponse(201) for _ in range(3)],
        ),
    )

    assert await services.optimizer.optimize_batch(["2024/01/photo.jpg"]) == 1

    asset = services.assets.get_asset(asset_id)
    assert asset is not None
    assert asset.sizes == {"medium": "photo-300x300.jpg", "photo-150x150.jpg": "photo-150x150.jpg"}

    assert await services.migrator.migrate_batch(["2024/01/photo.png"]) == 1

    assert [call["url"].rsplit("/", 1)[-1] for call in client.calls_for("put")] == [
        "photo.png",
        "photo-300x300.jpg",
        "photo-150x150.jpg",
    ]
    assert not (media_root / "2024/01/photo-300x300.jpg").exists()
    assert not (media_root / "2024/01/photo-150x150.jpg").exists()
