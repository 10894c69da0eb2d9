"""Dependency wiring helpers."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import FastAPI

from .assets.assets_repository import SqlAssetRepository
from .assets.attachment_resolver import AttachmentResolver
from .assets.content_repository import SqlContentRepository
from .config import AppConfig
from .eligibility.eligibility_api import router as eligibility_router
from .eligibility.eligibility_service import EligibilityService
from .media.reference_rewriter import ReferenceRewriter
from .migrator.migrator_api import router as migrator_router
from .migrator.migrator_service import MigratorService
from .migrator.storage_client import StorageClient, UploadThrottle
from .optimizer.optimizer_client import OptimizerClient
from .optimizer.optimizer_service import OptimizerService
from .processing.processing_api import router as processing_router
from .processing.processing_service import ProcessingService
from .queue.queue_api import router as queue_router
from .queue.queue_models import QueueName
from .queue.queue_repository import QueueRepository
from .queue.queue_scanner import QueueScanner
from .queue.work_queue import WorkQueue
from .settings.settings_api import router as settings_router
from .settings.settings_repository import SettingsRepository
from .settings.settings_service import SettingsService
from .utils.ttl_cache import InMemoryTTLCache, TTLCache


@dataclass(slots=True)
class Services:
    assets: SqlAssetRepository
    content: SqlContentRepository
    resolver: AttachmentResolver
    eligibility: EligibilityService
    optimization_queue: WorkQueue
    migration_queue: WorkQueue
    optimizer: OptimizerService
    migrator: MigratorService
    processing: ProcessingService
    settings: SettingsService


def build_services(config: AppConfig, cache: TTLCache | None = None) -> Services:
    """Construct the object graph shared by the app, worker and CLI."""
    cache = cache or InMemoryTTLCache()
    assets = SqlAssetRepository(config.session_factory)
    content = SqlContentRepository(config.session_factory)
    resolver = AttachmentResolver(assets=assets, layout=config.media, cache=cache)
    eligibility = EligibilityService(
        assets=assets,
        resolver=resolver,
        layout=config.media,
        storage=config.storage,
        limits=config.limits,
        cache=cache,
    )
    assets.add_listener(resolver.invalidate)
    assets.add_listener(eligibility.invalidate)

    queue_repo = QueueRepository(config.session_factory)
    optimization_queue = WorkQueue(QueueName.OPTIMIZATION, queue_repo, max_retries=config.limits.max_retries)
    migration_queue = WorkQueue(QueueName.MIGRATION, queue_repo, max_retries=config.limits.max_retries)
    scanner = QueueScanner(
        assets=assets,
        eligibility=eligibility,
        optimization_queue=optimization_queue,
        migration_queue=migration_queue,
        limits=config.limits,
    )

    rewriter = ReferenceRewriter(content)
    optimizer = OptimizerService(
        client=OptimizerClient(
            api_key=config.optimizer.api_key,
            base_url=config.optimizer.base_url,
            timeout_seconds=config.optimizer.timeout_seconds,
        ),
        eligibility=eligibility,
        resolver=resolver,
        assets=assets,
        rewriter=rewriter,
        layout=config.media,
        limits=config.limits,
        migration_queue=migration_queue,
    )
    migrator = MigratorService(
        storage=StorageClient(
            settings=config.storage,
            throttle=UploadThrottle(delay_seconds=config.limits.upload_delay_seconds),
        ),
        eligibility=eligibility,
        resolver=resolver,
        assets=assets,
        rewriter=rewriter,
        layout=config.media,
        settings=config.storage,
        limits=config.limits,
    )
    processing = ProcessingService(
        config=config,
        assets=assets,
        resolver=resolver,
        scanner=scanner,
        optimization_queue=optimization_queue,
        migration_queue=migration_queue,
        optimizer=optimizer,
        migrator=migrator,
    )

    settings = SettingsService(
        repo=SettingsRepository(config.session_factory),
        config=config,
        on_change=[eligibility.invalidate],
    )
    settings.load()

    return Services(
        assets=assets,
        content=content,
        resolver=resolver,
        eligibility=eligibility,
        optimization_queue=optimization_queue,
        migration_queue=migration_queue,
        optimizer=optimizer,
        migrator=migrator,
        processing=processing,
        settings=settings,
    )


def include_routers(app: FastAPI, config: AppConfig) -> None:
    """Mount module routers and attach services."""
    services = build_services(config)

    app.state.config = config
    app.state.asset_repo = services.assets
    app.state.eligibility_service = services.eligibility
    app.state.migrator_service = services.migrator
    app.state.processing_service = services.processing
    app.state.settings_service = services.settings

    app.include_router(processing_router)
    app.include_router(queue_router)
    app.include_router(eligibility_router)
    app.include_router(migrator_router)
    app.include_router(settings_router)
