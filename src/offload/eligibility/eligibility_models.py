"""Value objects produced by the eligibility engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class MigrationStatus(str, Enum):
    NOT_MIGRATED = "not_migrated"
    MIGRATING = "migrating"
    MIGRATED = "migrated"
    INCONSISTENT = "inconsistent"


class Repair(str, Enum):
    """Corrective action paired with an inconsistent migration state."""

    NONE = "none"
    RESET_PUBLIC_URL = "reset_public_url"
    CLEAR_MIGRATION = "clear_migration"


@dataclass(frozen=True, slots=True)
class MigrationReconciliation:
    status: MigrationStatus
    repair: Repair = Repair.NONE

    @property
    def treat_as_migrated(self) -> bool:
        if self.status is MigrationStatus.MIGRATED:
            return True
        return self.status is MigrationStatus.INCONSISTENT and self.repair is Repair.RESET_PUBLIC_URL


@dataclass(slots=True)
class FileInfo:
    path: Path
    relative_path: str
    exists: bool
    readable: bool
    size_bytes: int
    mime_type: str
    asset_id: int | None = None

    @property
    def size_kb(self) -> float:
        return self.size_bytes / 1024


@dataclass(frozen=True, slots=True)
class EligibilityDecision:
    eligible: bool
    reason: str

    def __bool__(self) -> bool:
        return self.eligible


@dataclass(slots=True)
class EligibilityStats:
    """Funnel counts: every stage is a subset of the previous one."""

    kind: str
    total_images: int = 0
    locally_stored: int = 0
    correct_type: int = 0
    correct_size: int = 0
    not_processed: int = 0
    eligible_total: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        pending_key = "not_optimized" if self.kind == "optimization" else "not_migrated"
        return {
            "total_images": self.total_images,
            "locally_stored": self.locally_stored,
            "correct_type": self.correct_type,
            "correct_size": self.correct_size,
            pending_key: self.not_processed,
            "eligible_total": self.eligible_total,
            **self.extra,
        }
