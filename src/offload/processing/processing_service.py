"""Drive one optimization or migration batch per call."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..assets.assets_models import AssetFlag
from ..assets.assets_store import AssetStore
from ..assets.attachment_resolver import AttachmentResolver
from ..config import AppConfig
from ..exceptions import AppError, NotConfiguredError, RemoteServiceError
from ..migrator.migrator_service import MigratorService
from ..optimizer.optimizer_service import OptimizerService
from ..queue.queue_models import BatchProcessor, QueueName
from ..queue.queue_scanner import QueueScanner
from ..queue.work_queue import WorkQueue
from .processing_models import BatchReport

logger = logging.getLogger(__name__)

QUEUE_PREVIEW_LIMIT = 50


@dataclass
class ProcessingService:
    """Scan when idle, drop vanished files, run a batch, account for retries."""

    config: AppConfig
    assets: AssetStore
    resolver: AttachmentResolver
    scanner: QueueScanner
    optimization_queue: WorkQueue
    migration_queue: WorkQueue
    optimizer: OptimizerService
    migrator: MigratorService
    log: logging.Logger = field(default_factory=lambda: logger)

    def queue(self, name: QueueName | str) -> WorkQueue:
        if QueueName(name) is QueueName.OPTIMIZATION:
            return self.optimization_queue
        return self.migration_queue

    async def process_optimization_batch(self) -> BatchReport:
        return await self._process(
            QueueName.OPTIMIZATION,
            processor=self.optimizer,
            ensure_configured=self.optimizer.client.ensure_configured,
            batch_size=self.config.limits.optimization_batch_size,
            scan=self.scanner.scan_for_optimization,
            done_flag=AssetFlag.OPTIMIZED,
        )

    async def process_migration_batch(self) -> BatchReport:
        return await self._process(
            QueueName.MIGRATION,
            processor=self.migrator,
            ensure_configured=self.migrator.storage.ensure_configured,
            batch_size=self.config.limits.migration_batch_size,
            scan=self.scanner.scan_for_migration,
            done_flag=AssetFlag.MIGRATED,
        )

    async def _process(
        self,
        name: QueueName,
        *,
        processor: BatchProcessor,
        ensure_configured: Callable[[], None],
        batch_size: int,
        scan: Callable[[], int],
        done_flag: str,
    ) -> BatchReport:
        queue = self.queue(name)
        report = BatchReport(task=name.value, success=True, continue_processing=False)

        try:
            ensure_configured()
        except NotConfiguredError as exc:
            self.log.warning("processing.not_configured", extra={"task": name.value, "missing": exc.missing})
            report.success = False
            report.error = "not_configured"
            report.messages.append(str(exc))
            return report

        if queue.size() == 0:
            added = scan()
            report.messages.append(f"Scanned library: {added} file(s) queued")
            if added == 0:
                report.messages.append("Nothing to process")
                return self._finish(report, queue, done_flag)

        missing = [path for path in queue.get_batch(batch_size) if not self.resolver.file_exists(path)]
        if missing:
            queue.remove_batch(missing)
            report.skipped += len(missing)
            report.messages.extend(f"{path}: file no longer exists" for path in missing)

        try:
            outcome = await queue.process(processor, batch_size)
        except NotConfiguredError as exc:
            report.success = False
            report.error = "not_configured"
            report.messages.append(str(exc))
            return self._finish(report, queue, done_flag)
        except (AppError, OSError) as exc:
            self.log.exception("processing.batch.error", extra={"task": name.value})
            report.success = False
            report.error = "processing_failed"
            report.messages.append(str(exc))
            return self._finish(report, queue, done_flag)

        if outcome is None:
            return self._finish(report, queue, done_flag)

        report.processed = len(outcome.succeeded)
        report.failed = len(outcome.failed)
        report.skipped += len(outcome.dropped)
        report.messages.extend(outcome.messages)
        report.evicted = queue.record_failures([*outcome.failed, *outcome.deferred])
        if outcome.transport_failed:
            report.success = False
            report.error = "remote_failure"
        return self._finish(report, queue, done_flag)

    def _finish(self, report: BatchReport, queue: WorkQueue, done_flag: str) -> BatchReport:
        report.remaining = queue.size()
        done = len(self.assets.ids_with_flag(done_flag))
        report.total = done + report.remaining
        report.progress = round(done / report.total * 100) if report.total else 100
        report.continue_processing = report.remaining > 0 and report.error != "not_configured"
        self.log.info(
            "processing.batch.report",
            extra={
                "task": report.task,
                "processed": report.processed,
                "failed": report.failed,
                "skipped": report.skipped,
                "remaining": report.remaining,
            },
        )
        return report

    def reinitialize_queue(self, name: QueueName | str) -> dict[str, Any]:
        """Empty the queue and repopulate it from a fresh scan."""
        queue = self.queue(name)
        cleared = queue.clear()
        added = self.scan(queue.name)
        return {"queue": queue.name.value, "cleared": cleared, "added": added, "size": queue.size()}

    def scan(self, name: QueueName | str) -> int:
        if QueueName(name) is QueueName.OPTIMIZATION:
            return self.scanner.scan_for_optimization()
        return self.scanner.scan_for_migration()

    def queue_status(self, name: QueueName | str) -> dict[str, Any]:
        queue = self.queue(name)
        items = queue.get_all()
        done_flag = AssetFlag.OPTIMIZED if queue.name is QueueName.OPTIMIZATION else AssetFlag.MIGRATED
        return {
            "queue": queue.name.value,
            "size": len(items),
            "items": items[:QUEUE_PREVIEW_LIMIT],
            "retry_counts": queue.repo.retry_counts(queue.name.value),
            "processed": len(self.assets.ids_with_flag(done_flag)),
        }

    def check_config_status(self) -> dict[str, Any]:
        optimizer = self.config.optimizer
        storage = self.config.storage
        return {
            "optimizer": {
                "configured": optimizer.is_configured,
                "region": optimizer.region,
                "endpoint": optimizer.base_url,
            },
            "storage": {
                "configured": storage.is_configured,
                "missing": storage.missing,
                "storage_zone": storage.storage_zone,
                "public_host": storage.public_host if storage.storage_zone else "",
            },
            "max_file_size_kb": self.config.limits.max_file_size_kb,
            "auto_migrate": self.config.limits.auto_migrate,
        }

    async def test_connections(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        try:
            status = await self.optimizer.client.account_status()
            result["optimizer"] = {"ok": True, "message": "connection successful", "account": status}
        except (NotConfiguredError, RemoteServiceError) as exc:
            result["optimizer"] = {"ok": False, "message": str(exc)}

        try:
            ok, message = await self.migrator.storage.test_connection()
            result["storage"] = {"ok": ok, "message": message}
        except NotConfiguredError as exc:
            result["storage"] = {"ok": False, "message": str(exc)}
        return result
