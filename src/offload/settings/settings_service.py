"""Runtime overrides of processing limits stored in the database."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..config import AppConfig, clamp_optimization_batch_size
from .settings_repository import SettingsRepository

_INT_KEYS = ("max_file_size_kb", "optimization_batch_size", "migration_batch_size")
_BOOL_KEYS = ("auto_migrate", "file_versioning", "commerce_sizes")


@dataclass(slots=True)
class SettingsService:
    """Apply stored overrides on top of environment configuration.

    The shared :class:`ProcessingLimits` instance is mutated in place so
    every service holding it sees the new values.
    """

    repo: SettingsRepository
    config: AppConfig
    on_change: list[Callable[[], None]] = field(default_factory=list)

    def load(self) -> dict[str, Any]:
        store = self.repo.read_all()
        self._apply(store)
        return self.snapshot()

    def update(self, payload: dict[str, Any], actor: str | None = None) -> dict[str, Any]:
        updates: dict[str, str] = {}
        for key in _INT_KEYS:
            if (value := payload.get(key)) is not None:
                updates[key] = str(int(value))
        for key in _BOOL_KEYS:
            if (value := payload.get(key)) is not None:
                updates[key] = "1" if value else "0"
        if updates:
            self.repo.bulk_upsert(updates, updated_by=actor)
        snapshot = self.load()
        if updates:
            for callback in self.on_change:
                callback()
        return snapshot

    def snapshot(self) -> dict[str, Any]:
        limits = self.config.limits
        return {
            "max_file_size_kb": limits.max_file_size_kb,
            "auto_migrate": limits.auto_migrate,
            "file_versioning": limits.file_versioning,
            "commerce_sizes": limits.commerce_sizes,
            "optimization_batch_size": limits.optimization_batch_size,
            "migration_batch_size": limits.migration_batch_size,
            "optimizer_configured": self.config.optimizer.is_configured,
            "storage_configured": self.config.storage.is_configured,
        }

    def _apply(self, store: dict[str, str]) -> None:
        limits = self.config.limits
        for key in _INT_KEYS:
            raw = store.get(key)
            if raw is None:
                continue
            try:
                setattr(limits, key, int(raw))
            except ValueError:
                continue
        for key in _BOOL_KEYS:
            raw = store.get(key)
            if raw is not None:
                setattr(limits, key, raw.strip().lower() in {"1", "true", "yes", "on"})
        limits.optimization_batch_size = clamp_optimization_batch_size(limits.optimization_batch_size)
