"""Resolve file paths to their owning asset and back."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from ..config import MediaLayout
from ..media.media_paths import normalize_path, relative_path
from ..media.media_variants import discover_variants
from ..utils.ttl_cache import TTLCache
from .assets_store import AssetStore

logger = logging.getLogger(__name__)

_UNRESOLVED = -1
_KEY_PREFIX = "resolver:"


@dataclass
class AttachmentResolver:
    """Path to asset lookup with a read-through cache.

    Lookup order: exact storage-relative path, then bare filename. Misses
    are cached for a shorter time than hits.
    """

    assets: AssetStore
    layout: MediaLayout
    cache: TTLCache
    ttl_seconds: float = 6 * 3600
    negative_ttl_seconds: float = 300
    log: logging.Logger = field(default_factory=lambda: logger)
    _keys_by_asset: dict[int, set[str]] = field(default_factory=dict)

    def normalize_path(self, path: str | Path) -> Path:
        return normalize_path(path, self.layout.root, self.layout.path_remaps)

    def relative_path(self, path: str | Path) -> str:
        return relative_path(self.normalize_path(path), self.layout.root)

    def absolute_path(self, relative: str) -> Path:
        return self.layout.root / relative

    def resolve(self, path: str | Path) -> int | None:
        return self.resolve_batch([path])[str(path)]

    def resolve_batch(self, paths: Iterable[str | Path]) -> dict[str, int | None]:
        """Resolve many paths with at most two store queries."""
        originals = [str(path) for path in paths]
        relatives = {original: self.relative_path(original) for original in originals}
        resolved: dict[str, int | None] = {}
        pending: dict[str, str] = {}

        for original, relative in relatives.items():
            cached = self.cache.get(self._cache_key(relative))
            if cached is None:
                pending[original] = relative
            else:
                resolved[original] = None if cached == _UNRESOLVED else cached

        if pending:
            exact = self.assets.find_by_path_batch(pending.values())
            by_name_needed = {
                original: PurePosixPath(relative).name
                for original, relative in pending.items()
                if relative not in exact
            }
            by_name = (
                self.assets.find_by_filename_batch(by_name_needed.values())
                if by_name_needed
                else {}
            )
            for original, relative in pending.items():
                asset_id = exact.get(relative)
                if asset_id is None and original in by_name_needed:
                    asset_id = by_name.get(by_name_needed[original])
                    if asset_id is not None:
                        self.log.debug(
                            "resolver.filename_match",
                            extra={"path": relative, "asset_id": asset_id},
                        )
                self._remember(relative, asset_id)
                resolved[original] = asset_id

        return {original: resolved[original] for original in originals}

    def invalidate(self, asset_id: int, key: str = "") -> None:
        """Drop cached lookups that point at ``asset_id``."""
        for cache_key in self._keys_by_asset.pop(asset_id, set()):
            self.cache.delete(cache_key)
        current = self.assets.get_primary_path(asset_id)
        if current:
            self.cache.delete(self._cache_key(current))

    def clear(self) -> None:
        self.cache.delete_prefix(_KEY_PREFIX)
        self._keys_by_asset.clear()

    def attachment_path(self, asset_id: int) -> Path | None:
        """Absolute primary path of the asset when the file exists."""
        relative = self.assets.get_primary_path(asset_id)
        if not relative:
            return None
        path = self.absolute_path(relative)
        return path if path.is_file() else None

    def related_files(self, asset_id: int) -> list[Path]:
        """Variants of the asset found on disk, recorded in metadata or not.

        Files that are the primary of another asset (``photo-1.jpg`` next to
        ``photo.jpg``) are excluded.
        """
        relative = self.assets.get_primary_path(asset_id)
        if not relative:
            return []
        candidates = discover_variants(self.absolute_path(relative))
        owners = self.assets.find_by_path_batch(
            relative_path(path, self.layout.root) for path in candidates
        )
        return [
            path
            for path in candidates
            if owners.get(relative_path(path, self.layout.root), asset_id) == asset_id
        ]

    def file_exists(self, path: str | Path) -> bool:
        candidate = self.normalize_path(path)
        return candidate.is_file() and os.access(candidate, os.R_OK)

    def _remember(self, relative: str, asset_id: int | None) -> None:
        key = self._cache_key(relative)
        if asset_id is None:
            self.cache.set(key, _UNRESOLVED, self.negative_ttl_seconds)
            return
        self.cache.set(key, asset_id, self.ttl_seconds)
        self._keys_by_asset.setdefault(asset_id, set()).add(key)

    @staticmethod
    def _cache_key(relative: str) -> str:
        return f"{_KEY_PREFIX}{relative}"
