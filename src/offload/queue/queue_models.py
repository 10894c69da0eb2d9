"""Queue names and batch outcomes shared by processors and the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol


class QueueName(str, Enum):
    OPTIMIZATION = "optimization"
    MIGRATION = "migration"


@dataclass(slots=True)
class BatchOutcome:
    """Per-path result of one processor call.

    ``succeeded`` and ``dropped`` leave the queue; ``failed`` stays queued
    and counts towards the retry cap. ``deferred`` (no verdict from the
    remote side) also stays queued and counts towards the cap.
    """

    attempted: list[str]
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    transport_failed: bool = False

    @property
    def done(self) -> list[str]:
        return [*self.succeeded, *self.dropped]

    def as_result(self) -> int | bool:
        """``False`` for a transport failure, otherwise the success count."""
        if self.transport_failed:
            return False
        return len(self.succeeded)


class BatchProcessor(Protocol):
    async def process_batch(self, paths: list[str]) -> BatchOutcome: ...
