"""Interfaces of the host asset database consumed by the offload core."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from typing import Any, Protocol

from .assets_models import Asset, ContentField

AssetChangeListener = Callable[[int, str], None]


class AssetStore(Protocol):
    def get_asset(self, asset_id: int) -> Asset | None: ...

    def get_primary_path(self, asset_id: int) -> str | None: ...

    def get_mime_type(self, asset_id: int) -> str | None: ...

    def get_size_variants(self, asset_id: int) -> dict[str, str]: ...

    def get_flag(self, asset_id: int, key: str, default: Any = None) -> Any: ...

    def set_flag(self, asset_id: int, key: str, value: Any) -> None: ...

    def delete_flag(self, asset_id: int, key: str) -> None: ...

    def find_by_path(self, relative_path: str) -> int | None: ...

    def find_by_path_batch(self, relative_paths: Iterable[str]) -> dict[str, int]: ...

    def find_by_filename_batch(self, filenames: Iterable[str]) -> dict[str, int]: ...

    def iter_image_assets(self, chunk_size: int = 100) -> Iterator[list[Asset]]: ...

    def ids_with_flag(self, key: str) -> list[int]: ...

    def update_asset_file(
        self, asset_id: int, *, path: str, mime_type: str, sizes: dict[str, str] | None = None
    ) -> None: ...

    def add_listener(self, listener: AssetChangeListener) -> None: ...


class ContentStore(Protocol):
    def find_containing(self, needle: str) -> list[ContentField]: ...

    def update_value(self, field_id: int, value: str) -> None: ...
