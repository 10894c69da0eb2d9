"""Periodic worker that drains the optimization and migration queues."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..config import AppConfig
from ..processing.processing_models import BatchReport
from ..processing.processing_service import ProcessingService


class OffloadWorker:
    """Runs one batch per configured task on every tick.

    A task is skipped on ticks where its remote service is not configured.
    When neither task reports more work the worker sleeps ``poll_interval``
    seconds before the next tick.
    """

    def __init__(
        self,
        *,
        processing: ProcessingService,
        config: AppConfig,
        sleep: Callable[[float], Any] | None = None,
        poll_interval: float = 60.0,
        busy_interval: float = 1.0,
    ) -> None:
        self.processing = processing
        self.config = config
        self._sleep = self._wrap_sleep(sleep)
        self._poll_interval = max(0.0, poll_interval)
        self._busy_interval = max(0.0, busy_interval)
        self._logger = logging.getLogger(__name__)

    @staticmethod
    def _wrap_sleep(
        sleep: Callable[[float], Any] | None,
    ) -> Callable[[float], Awaitable[None]]:
        if sleep is None:
            return asyncio.sleep

        async def _async_sleep(seconds: float) -> None:
            result = sleep(seconds)
            if inspect.isawaitable(result):
                await result  # type: ignore[no-any-return]

        return _async_sleep

    async def run_once(self) -> list[BatchReport]:
        """Process at most one optimization and one migration batch."""
        reports: list[BatchReport] = []
        if self.config.optimizer.is_configured:
            reports.append(await self.processing.process_optimization_batch())
        if self.config.storage.is_configured:
            reports.append(await self.processing.process_migration_batch())
        for report in reports:
            self._logger.info(
                "worker.tick",
                extra={
                    "task": report.task,
                    "processed": report.processed,
                    "remaining": report.remaining,
                    "error": report.error,
                },
            )
        return reports

    async def run_forever(self, *, shutdown_event: asyncio.Event) -> None:
        """Tick until ``shutdown_event`` is set."""
        try:
            while not shutdown_event.is_set():
                reports = await self.run_once()
                busy = any(report.continue_processing for report in reports)
                await self._sleep(self._busy_interval if busy else self._poll_interval)
        except asyncio.CancelledError:
            self._logger.debug("OffloadWorker cancelled")
            raise
