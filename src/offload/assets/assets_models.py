"""Domain models describing media assets and stored content."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any


class AssetFlag:
    """Meta keys persisted per asset."""

    OPTIMIZED = "optimized"
    OPTIMIZATION_DATE = "optimization_date"
    OPTIMIZATION_STATS = "optimization_stats"
    FILE_SIZE = "file_size"
    MIGRATED = "migrated"
    MIGRATION_IN_PROGRESS = "migration_in_progress"
    BUNNY_URL = "bunny_url"
    MIGRATION_DATE = "migration_date"
    ORIGINAL_URL = "original_url"
    LOCAL_DELETED = "local_deleted"
    VERSION_HASH = "version_hash"
    SIZE_URLS = "size_urls"
    PUBLIC_URL = "public_url"
    ORIGINAL_PATH = "original_path"
    OLD_URL = "old_url"
    NEW_URL = "new_url"

    # Writes to these keys invalidate resolver and stats caches.
    WATCHED = frozenset({OPTIMIZED, MIGRATED, BUNNY_URL, PUBLIC_URL})
    MIGRATION_STATE = (MIGRATED, BUNNY_URL, MIGRATION_DATE)


@dataclass(slots=True)
class Asset:
    """Logical owner of a media file and its processing flags."""

    id: int
    path: str
    mime_type: str
    sizes: dict[str, str] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def filename(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def directory(self) -> str:
        parent = str(PurePosixPath(self.path).parent)
        return "" if parent == "." else parent

    @property
    def optimized(self) -> bool:
        return bool(self.meta.get(AssetFlag.OPTIMIZED))

    @property
    def migrated(self) -> bool:
        return bool(self.meta.get(AssetFlag.MIGRATED))

    @property
    def bunny_url(self) -> str:
        return str(self.meta.get(AssetFlag.BUNNY_URL) or "")

    def variant_paths(self) -> dict[str, str]:
        """Map size name to relative path of each recorded variant."""
        prefix = f"{self.directory}/" if self.directory else ""
        return {name: f"{prefix}{filename}" for name, filename in self.sizes.items()}


@dataclass(slots=True)
class ContentField:
    """A stored text value that may embed media URLs."""

    id: int
    owner_id: int | None
    kind: str
    name: str
    value: str
