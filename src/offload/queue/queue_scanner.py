"""Populate work queues from the asset library."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..assets.assets_models import Asset
from ..assets.assets_store import AssetStore
from ..config import ProcessingLimits
from ..eligibility.eligibility_rules import optimization_decision
from ..eligibility.eligibility_service import EligibilityService
from .work_queue import WorkQueue

logger = logging.getLogger(__name__)


@dataclass
class QueueScanner:
    """Chunked library walk; always restarts from the first asset.

    Re-running a scan is idempotent because adding a queued path is a no-op.
    """

    assets: AssetStore
    eligibility: EligibilityService
    optimization_queue: WorkQueue
    migration_queue: WorkQueue
    limits: ProcessingLimits
    log: logging.Logger = field(default_factory=lambda: logger)

    def scan_for_optimization(self) -> int:
        added = 0
        chained = 0
        for chunk in self.assets.iter_image_assets(self.limits.scan_chunk_size):
            eligible: list[str] = []
            small: list[Asset] = []
            for asset in chunk:
                info = self.eligibility.file_info(asset.path, asset)
                decision = optimization_decision(
                    info,
                    optimized=asset.optimized,
                    public_url=self.eligibility.public_url(asset),
                    max_file_size_kb=self.limits.max_file_size_kb,
                    hosts=self.eligibility.hosts,
                )
                if decision.eligible:
                    eligible.append(asset.path)
                elif decision.reason == "below_size_threshold" and self.limits.auto_migrate:
                    small.append(asset)
            added += self.optimization_queue.add_batch(eligible)
            # Already-efficient formats below the threshold go straight to migration.
            chained += self.migration_queue.add_batch(
                asset.path
                for asset in small
                if self.eligibility.migration_decision_for(asset).eligible
            )
        self.log.info(
            "queue.scan.optimization",
            extra={"added": added, "chained_to_migration": chained},
        )
        return added

    def scan_for_migration(self) -> int:
        added = 0
        for chunk in self.assets.iter_image_assets(self.limits.scan_chunk_size):
            eligible = [
                asset.path
                for asset in chunk
                if self.eligibility.migration_decision_for(asset).eligible
            ]
            added += self.migration_queue.add_batch(eligible)
        self.log.info("queue.scan.migration", extra={"added": added})
        return added
