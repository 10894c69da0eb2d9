"""Eligibility checks against live asset state and the stats funnel."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from ..assets.assets_models import Asset, AssetFlag
from ..assets.assets_store import AssetStore
from ..assets.attachment_resolver import AttachmentResolver
from ..config import MediaLayout, ProcessingLimits, StorageSettings
from ..media.media_paths import guess_mime_type, relative_path
from ..utils.ttl_cache import TTLCache
from .eligibility_models import (
    EligibilityDecision,
    EligibilityStats,
    FileInfo,
    MigrationReconciliation,
    Repair,
)
from .eligibility_rules import (
    MIGRATION_TYPES,
    OPTIMIZATION_TYPES,
    is_remote_url,
    migration_decision,
    optimization_decision,
    optimization_type_allows,
    reconcile_migration_state,
    remote_hosts,
)

logger = logging.getLogger(__name__)

_STATS_PREFIX = "stats:"


@dataclass
class EligibilityService:
    assets: AssetStore
    resolver: AttachmentResolver
    layout: MediaLayout
    storage: StorageSettings
    limits: ProcessingLimits
    cache: TTLCache
    stats_ttl_seconds: float = 300
    log: logging.Logger = field(default_factory=lambda: logger)

    @property
    def hosts(self) -> tuple[str, ...]:
        return remote_hosts(self.storage.custom_hostname)

    def public_url(self, asset: Asset) -> str:
        cached = asset.meta.get(AssetFlag.PUBLIC_URL)
        if cached:
            return str(cached)
        if asset.migrated and asset.bunny_url:
            version = asset.meta.get(AssetFlag.VERSION_HASH)
            if self.limits.file_versioning and version:
                return f"{asset.bunny_url}?v={version}"
            return asset.bunny_url
        return self.layout.local_url(asset.path)

    def file_info(self, path: str | Path, asset: Asset | None = None) -> FileInfo:
        absolute = self.layout.root / asset.path if asset else self.resolver.normalize_path(path)
        exists = absolute.is_file()
        return FileInfo(
            path=absolute,
            relative_path=relative_path(absolute, self.layout.root),
            exists=exists,
            readable=exists and os.access(absolute, os.R_OK),
            size_bytes=absolute.stat().st_size if exists else 0,
            mime_type=(asset.mime_type if asset else guess_mime_type(absolute)).lower(),
            asset_id=asset.id if asset else None,
        )

    def load_asset(self, path: str | Path) -> Asset | None:
        asset_id = self.resolver.resolve(path)
        if asset_id is None:
            return None
        return self.assets.get_asset(asset_id)

    def reconcile(self, asset: Asset, *, apply: bool = True) -> MigrationReconciliation:
        """Compute the migration status and repair stale flags when ``apply``."""
        result = reconcile_migration_state(
            migrated_flag=asset.migrated,
            bunny_url=asset.bunny_url,
            resolved_url=self.public_url(asset),
            in_progress=bool(asset.meta.get(AssetFlag.MIGRATION_IN_PROGRESS)),
            hosts=self.hosts,
        )
        if not apply or result.repair is Repair.NONE:
            return result

        if result.repair is Repair.RESET_PUBLIC_URL:
            self.log.info("eligibility.reconcile.reset_public_url", extra={"asset_id": asset.id})
            self.assets.delete_flag(asset.id, AssetFlag.PUBLIC_URL)
            asset.meta.pop(AssetFlag.PUBLIC_URL, None)
        elif result.repair is Repair.CLEAR_MIGRATION:
            self.log.info(
                "eligibility.reconcile.clear_migration",
                extra={"asset_id": asset.id, "bunny_url": asset.bunny_url},
            )
            for key in (*AssetFlag.MIGRATION_STATE, AssetFlag.PUBLIC_URL):
                self.assets.delete_flag(asset.id, key)
                asset.meta.pop(key, None)
        return result

    def optimization_decision(self, path: str | Path) -> EligibilityDecision:
        asset = self.load_asset(path)
        if asset is None:
            return EligibilityDecision(False, "unknown_asset")
        return optimization_decision(
            self.file_info(path, asset),
            optimized=asset.optimized,
            public_url=self.public_url(asset),
            max_file_size_kb=self.limits.max_file_size_kb,
            hosts=self.hosts,
        )

    def migration_decision(self, path: str | Path) -> EligibilityDecision:
        asset = self.load_asset(path)
        if asset is None:
            return EligibilityDecision(False, "unknown_asset")
        return self.migration_decision_for(asset)

    def migration_decision_for(self, asset: Asset) -> EligibilityDecision:
        reconciliation = self.reconcile(asset)
        return migration_decision(
            self.file_info(asset.path, asset),
            reconciliation=reconciliation,
            max_file_size_kb=self.limits.max_file_size_kb,
        )

    def is_eligible_for_optimization(self, path: str | Path) -> bool:
        return self.optimization_decision(path).eligible

    def is_eligible_for_migration(self, path: str | Path) -> bool:
        return self.migration_decision(path).eligible

    def get_optimization_stats(self) -> EligibilityStats:
        cached = self.cache.get(f"{_STATS_PREFIX}optimization")
        if cached is not None:
            return cached
        stats = EligibilityStats(kind="optimization")
        for chunk in self.assets.iter_image_assets(self.limits.scan_chunk_size):
            for asset in chunk:
                stats.total_images += 1
                info = self.file_info(asset.path, asset)
                if not info.exists or is_remote_url(self.public_url(asset), self.hosts):
                    continue
                stats.locally_stored += 1
                if not asset.optimized:
                    stats.not_processed += 1
                if info.mime_type not in OPTIMIZATION_TYPES:
                    continue
                stats.correct_type += 1
                if not optimization_type_allows(
                    info.mime_type, info.size_kb, self.limits.max_file_size_kb
                ):
                    continue
                stats.correct_size += 1
                if not asset.optimized:
                    stats.eligible_total += 1
        self.cache.set(f"{_STATS_PREFIX}optimization", stats, self.stats_ttl_seconds)
        return stats

    def get_migration_stats(self) -> EligibilityStats:
        cached = self.cache.get(f"{_STATS_PREFIX}migration")
        if cached is not None:
            return cached
        stats = EligibilityStats(kind="migration")
        for chunk in self.assets.iter_image_assets(self.limits.scan_chunk_size):
            for asset in chunk:
                stats.total_images += 1
                info = self.file_info(asset.path, asset)
                migrated = self.reconcile(asset, apply=False).treat_as_migrated
                if not info.exists:
                    continue
                stats.locally_stored += 1
                if not migrated:
                    stats.not_processed += 1
                if info.mime_type not in MIGRATION_TYPES:
                    continue
                stats.correct_type += 1
                if info.size_kb > self.limits.max_file_size_kb:
                    continue
                stats.correct_size += 1
                if not migrated:
                    stats.eligible_total += 1
        self.cache.set(f"{_STATS_PREFIX}migration", stats, self.stats_ttl_seconds)
        return stats

    def invalidate(self, asset_id: int = 0, key: str = "") -> None:
        self.cache.delete_prefix(_STATS_PREFIX)
