"""Audit results for migrated assets."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CompletenessStatus(str, Enum):
    NOT_MIGRATED = "not_migrated"
    MISSING_BUNNY_URL = "missing_bunny_url"
    INCOMPLETE_DELETION = "incomplete_deletion"
    DELETION_FAILED = "deletion_failed"
    COMPLETE = "complete"


@dataclass(slots=True)
class CompletenessReport:
    asset_id: int
    status: CompletenessStatus
    bunny_url: str = ""
    local_deleted: bool = False
    local_files: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "status": self.status.value,
            "bunny_url": self.bunny_url,
            "local_deleted": self.local_deleted,
            "local_files": list(self.local_files),
        }


@dataclass(slots=True)
class FixResult:
    asset_id: int
    status: str  # already_complete | fixed | error
    new_status: CompletenessStatus | None = None
    message: str = ""

    def as_dict(self) -> dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "status": self.status,
            "new_status": self.new_status.value if self.new_status else None,
            "message": self.message,
        }
