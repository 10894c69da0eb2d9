"""Pydantic schemas for the settings API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class SettingsResponseModel(BaseModel):
    max_file_size_kb: int
    auto_migrate: bool
    file_versioning: bool
    commerce_sizes: bool
    optimization_batch_size: int
    migration_batch_size: int
    optimizer_configured: bool
    storage_configured: bool


class SettingsUpdateRequest(BaseModel):
    max_file_size_kb: int | None = Field(default=None, ge=1, le=10240)
    auto_migrate: bool | None = None
    file_versioning: bool | None = None
    commerce_sizes: bool | None = None
    optimization_batch_size: int | None = Field(default=None, ge=1, le=5)
    migration_batch_size: int | None = Field(default=None, ge=1, le=20)
