from __future__ import annotations

import pytest

from src.offload.assets.assets_models import AssetFlag
from src.offload.assets.assets_repository import SqlAssetRepository
from src.offload.assets.attachment_resolver import AttachmentResolver
from src.offload.config import ProcessingLimits
from src.offload.eligibility.eligibility_service import EligibilityService
from src.offload.queue.queue_models import QueueName
from src.offload.queue.queue_repository import QueueRepository
from src.offload.queue.queue_scanner import QueueScanner
from src.offload.queue.work_queue import WorkQueue
from src.offload.utils.ttl_cache import InMemoryTTLCache
from tests.helpers.media_files import write_file


@pytest.fixture
def limits() -> ProcessingLimits:
    return ProcessingLimits(scan_chunk_size=2)


@pytest.fixture
def scanner(session_factory, layout, storage_settings, limits) -> QueueScanner:
    assets = SqlAssetRepository(session_factory)
    cache = InMemoryTTLCache()
    resolver = AttachmentResolver(assets=assets, layout=layout, cache=cache)
    eligibility = EligibilityService(
        assets=assets,
        resolver=resolver,
        layout=layout,
        storage=storage_settings,
        limits=limits,
        cache=cache,
    )
    repo = QueueRepository(session_factory)
    return QueueScanner(
        assets=assets,
        eligibility=eligibility,
        optimization_queue=WorkQueue(QueueName.OPTIMIZATION, repo),
        migration_queue=WorkQueue(QueueName.MIGRATION, repo),
        limits=limits,
    )


@pytest.fixture
def library(scanner: QueueScanner, media_root) -> None:
    assets = scanner.assets
    files = {
        "2024/01/photo.jpg": ("image/jpeg", 400 * 1024),
        "2024/01/large.webp": ("image/webp", 300 * 1024),
        "2024/01/small.webp": ("image/webp", 40 * 1024),
        "2024/01/logo.svg": ("image/svg+xml", 2 * 1024),
        "2024/01/done.png": ("image/png", 10 * 1024),
    }
    for relative, (mime_type, size) in files.items():
        write_file(media_root, relative, b"0" * size)
        asset_id = assets.add_asset(path=relative, mime_type=mime_type)
        if relative.endswith("done.png"):
            assets.set_flag(asset_id, AssetFlag.OPTIMIZED, True)


@pytest.mark.usefixtures("library")
def test_optimization_scan_queues_eligible_files_across_chunks(scanner: QueueScanner) -> None:
    added = scanner.scan_for_optimization()

    assert added == 2
    assert scanner.optimization_queue.get_all() == ["2024/01/photo.jpg", "2024/01/large.webp"]
    assert scanner.migration_queue.size() == 0


@pytest.mark.usefixtures("library")
def test_rescan_adds_nothing_new(scanner: QueueScanner) -> None:
    scanner.scan_for_optimization()
    scanner.scan_for_migration()

    assert scanner.scan_for_optimization() == 0
    assert scanner.scan_for_migration() == 0


@pytest.mark.usefixtures("library")
def test_migration_scan_picks_small_files(scanner: QueueScanner) -> None:
    added = scanner.scan_for_migration()

    assert added == 3
    assert scanner.migration_queue.get_all() == [
        "2024/01/small.webp",
        "2024/01/logo.svg",
        "2024/01/done.png",
    ]


@pytest.mark.usefixtures("library")
def test_auto_migrate_chains_small_efficient_files(scanner: QueueScanner, limits: ProcessingLimits) -> None:
    limits.auto_migrate = True

    scanner.scan_for_optimization()

    assert scanner.migration_queue.get_all() == ["2024/01/small.webp"]
