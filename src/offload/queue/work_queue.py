"""Durable FIFO work queue with per-entry retry counters."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from .queue_models import BatchOutcome, BatchProcessor, QueueName
from .queue_repository import QueueRepository

logger = logging.getLogger(__name__)


@dataclass
class WorkQueue:
    name: QueueName
    repo: QueueRepository
    max_retries: int = 3
    log: logging.Logger = field(default_factory=lambda: logger)

    def add(self, path: str) -> bool:
        """Append ``path``; ``False`` when it is already queued."""
        return self.repo.add_many(self.name.value, [path]) == 1

    def add_batch(self, paths: Iterable[str]) -> int:
        added = self.repo.add_many(self.name.value, paths)
        if added:
            self.log.info("queue.add_batch", extra={"queue": self.name.value, "added": added})
        return added

    def get_batch(self, size: int) -> list[str]:
        """Peek at up to ``size`` paths from the head without removing them."""
        return self.repo.head(self.name.value, size)

    def remove(self, path: str) -> bool:
        return self.repo.remove_many(self.name.value, [path]) > 0

    def remove_batch(self, paths: Iterable[str]) -> int:
        return self.repo.remove_many(self.name.value, paths)

    def clear(self) -> int:
        removed = self.repo.clear(self.name.value)
        self.log.info("queue.cleared", extra={"queue": self.name.value, "removed": removed})
        return removed

    def size(self) -> int:
        return self.repo.count(self.name.value)

    def get_all(self) -> list[str]:
        return self.repo.list_all(self.name.value)

    def retry_count(self, path: str) -> int:
        """Increment and return the retry counter; call once per failed attempt."""
        return self.repo.increment_retry(self.name.value, path)

    def reset_retry_count(self, path: str) -> None:
        self.repo.reset_retry(self.name.value, path)

    def record_failures(self, paths: Iterable[str]) -> list[str]:
        """Count a failed attempt for each path and evict those past the cap."""
        evicted = []
        for path in paths:
            attempts = self.retry_count(path)
            if attempts >= self.max_retries:
                self.repo.remove_many(self.name.value, [path])
                evicted.append(path)
                self.log.warning(
                    "queue.retry_cap.evicted",
                    extra={"queue": self.name.value, "path": path, "attempts": attempts},
                )
        return evicted

    async def process(self, processor: BatchProcessor, batch_size: int) -> BatchOutcome | None:
        """Run one batch through ``processor`` and dequeue what it handled.

        Returns ``None`` when the queue is empty. Failed paths stay queued;
        retry accounting is left to the caller.
        """
        batch = self.get_batch(batch_size)
        if not batch:
            return None
        outcome = await processor.process_batch(batch)
        if outcome.done:
            self.remove_batch(outcome.done)
        for path in outcome.succeeded:
            self.reset_retry_count(path)
        return outcome
