from __future__ import annotations

import pytest

from src.offload.assets.assets_models import AssetFlag
from src.offload.assets.assets_repository import SqlAssetRepository
from src.offload.exceptions import NotFoundError


@pytest.fixture
def assets(session_factory) -> SqlAssetRepository:
    return SqlAssetRepository(session_factory)


def test_asset_accessors_round_trip_sizes_and_flags(assets) -> None:
    asset_id = assets.add_asset(
        path="2024/01/photo.jpg",
        mime_type="image/jpeg",
        sizes={"thumbnail": "photo-150x150.jpg"},
        meta={AssetFlag.OPTIMIZATION_STATS: {"originalSize": 2048}},
    )

    assert assets.get_primary_path(asset_id) == "2024/01/photo.jpg"
    assert assets.get_mime_type(asset_id) == "image/jpeg"
    assert assets.get_size_variants(asset_id) == {"thumbnail": "photo-150x150.jpg"}
    assert assets.get_flag(asset_id, AssetFlag.OPTIMIZATION_STATS) == {"originalSize": 2048}
    assert assets.get_flag(asset_id, AssetFlag.MIGRATED, default=False) is False


def test_missing_asset_returns_empty_values(assets) -> None:
    assert assets.get_asset(404) is None
    assert assets.get_primary_path(404) is None
    assert assets.get_size_variants(404) == {}
    with pytest.raises(NotFoundError):
        assets.set_flag(404, AssetFlag.OPTIMIZED, True)


def test_lookups_prefer_the_oldest_match(assets) -> None:
    first = assets.add_asset(path="2023/05/logo.png", mime_type="image/png")
    assets.add_asset(path="2024/02/logo.png", mime_type="image/png")

    assert assets.find_by_path("2024/02/logo.png") == first + 1
    assert assets.find_by_filename_batch(["logo.png", "absent.png"]) == {"logo.png": first}
    assert assets.find_by_path_batch([]) == {}


def test_iter_image_assets_chunks_and_skips_documents(assets) -> None:
    for index in range(5):
        assets.add_asset(path=f"img-{index}.jpg", mime_type="image/jpeg")
    assets.add_asset(path="manual.pdf", mime_type="application/pdf")

    chunks = list(assets.iter_image_assets(chunk_size=2))

    assert [len(chunk) for chunk in chunks] == [2, 2, 1]
    assert all(asset.mime_type.startswith("image/") for chunk in chunks for asset in chunk)


def test_ids_with_flag_ignores_false_values(assets) -> None:
    done = assets.add_asset(path="a.jpg", mime_type="image/jpeg")
    reset = assets.add_asset(path="b.jpg", mime_type="image/jpeg")
    assets.set_flag(done, AssetFlag.OPTIMIZED, True)
    assets.set_flag(reset, AssetFlag.OPTIMIZED, False)

    assert assets.ids_with_flag(AssetFlag.OPTIMIZED) == [done]


def test_listeners_fire_for_watched_keys_and_file_moves(assets) -> None:
    events: list[tuple[int, str]] = []
    assets.add_listener(lambda asset_id, key: events.append((asset_id, key)))
    asset_id = assets.add_asset(path="a.jpg", mime_type="image/jpeg")

    assets.set_flag(asset_id, AssetFlag.OPTIMIZATION_DATE, "2026-01-01T00:00:00")
    assets.set_flag(asset_id, AssetFlag.MIGRATED, True)
    assets.update_asset_file(asset_id, path="a.webp", mime_type="image/webp")
    assets.delete_flag(asset_id, AssetFlag.MIGRATED)

    assert events == [(asset_id, "migrated"), (asset_id, "path"), (asset_id, "migrated")]
    assert assets.get_asset(asset_id).filename == "a.webp"
