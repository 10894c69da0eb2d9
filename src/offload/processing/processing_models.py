"""Summaries returned to the CLI, worker and HTTP callers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class BatchReport:
    task: str
    success: bool
    continue_processing: bool
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    remaining: int = 0
    progress: int = 0
    total: int = 0
    evicted: list[str] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "task": self.task,
            "success": self.success,
            "continue": self.continue_processing,
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "remaining": self.remaining,
            "progress": self.progress,
            "total": self.total,
            "evicted": list(self.evicted),
            "messages": list(self.messages),
            "error": self.error,
        }
