"""Persistence layer for asset records and their meta flags."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable, Iterator
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any

from sqlalchemy.orm import Session, selectinload

from ..db.db_models import AssetMetaModel, AssetModel
from ..exceptions import NotFoundError, handle_sqlalchemy_errors
from .assets_models import Asset, AssetFlag
from .assets_store import AssetChangeListener

logger = logging.getLogger(__name__)


class SqlAssetRepository:
    """Asset store backed by the ``asset`` and ``asset_meta`` tables."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory
        self._listeners: list[AssetChangeListener] = []

    def add_listener(self, listener: AssetChangeListener) -> None:
        self._listeners.append(listener)

    def add_asset(
        self,
        *,
        path: str,
        mime_type: str,
        sizes: dict[str, str] | None = None,
        meta: dict[str, Any] | None = None,
    ) -> int:
        with self._session_factory() as session, handle_sqlalchemy_errors(entity="asset"):
            model = AssetModel(
                path=path,
                filename=PurePosixPath(path).name,
                mime_type=mime_type,
                sizes_json=json.dumps(sizes or {}),
            )
            session.add(model)
            session.flush()
            for key, value in (meta or {}).items():
                session.add(AssetMetaModel(asset_id=model.id, key=key, value=json.dumps(value)))
            session.commit()
            return model.id

    def get_asset(self, asset_id: int) -> Asset | None:
        with self._session_factory() as session:
            model = session.get(AssetModel, asset_id)
            if model is None:
                return None
            return self._to_domain(model)

    def get_primary_path(self, asset_id: int) -> str | None:
        asset = self.get_asset(asset_id)
        return asset.path if asset else None

    def get_mime_type(self, asset_id: int) -> str | None:
        asset = self.get_asset(asset_id)
        return asset.mime_type if asset else None

    def get_size_variants(self, asset_id: int) -> dict[str, str]:
        asset = self.get_asset(asset_id)
        return dict(asset.sizes) if asset else {}

    def get_flag(self, asset_id: int, key: str, default: Any = None) -> Any:
        with self._session_factory() as session:
            row = session.get(AssetMetaModel, (asset_id, key))
            if row is None:
                return default
            return json.loads(row.value)

    def set_flag(self, asset_id: int, key: str, value: Any) -> None:
        with self._session_factory() as session, handle_sqlalchemy_errors(entity="asset_meta"):
            if session.get(AssetModel, asset_id) is None:
                raise NotFoundError(f"asset '{asset_id}' not found")
            row = session.get(AssetMetaModel, (asset_id, key))
            if row is None:
                row = AssetMetaModel(asset_id=asset_id, key=key)
            row.value = json.dumps(value)
            row.updated_at = datetime.utcnow()
            session.add(row)
            session.commit()
        self._notify(asset_id, key)

    def delete_flag(self, asset_id: int, key: str) -> None:
        with self._session_factory() as session:
            row = session.get(AssetMetaModel, (asset_id, key))
            if row is None:
                return
            session.delete(row)
            session.commit()
        self._notify(asset_id, key)

    def find_by_path(self, relative_path: str) -> int | None:
        with self._session_factory() as session:
            row = (
                session.query(AssetModel.id)
                .filter(AssetModel.path == relative_path)
                .order_by(AssetModel.id)
                .first()
            )
            return row[0] if row else None

    def find_by_path_batch(self, relative_paths: Iterable[str]) -> dict[str, int]:
        wanted = list(dict.fromkeys(relative_paths))
        if not wanted:
            return {}
        with self._session_factory() as session:
            rows = (
                session.query(AssetModel.path, AssetModel.id)
                .filter(AssetModel.path.in_(wanted))
                .order_by(AssetModel.id)
                .all()
            )
        found: dict[str, int] = {}
        for path, asset_id in rows:
            found.setdefault(path, asset_id)
        return found

    def find_by_filename_batch(self, filenames: Iterable[str]) -> dict[str, int]:
        wanted = list(dict.fromkeys(filenames))
        if not wanted:
            return {}
        with self._session_factory() as session:
            rows = (
                session.query(AssetModel.filename, AssetModel.id)
                .filter(AssetModel.filename.in_(wanted))
                .order_by(AssetModel.id)
                .all()
            )
        found: dict[str, int] = {}
        for filename, asset_id in rows:
            found.setdefault(filename, asset_id)
        return found

    def iter_image_assets(self, chunk_size: int = 100) -> Iterator[list[Asset]]:
        """Yield image assets in id order, one bounded chunk at a time."""
        offset = 0
        while True:
            with self._session_factory() as session:
                rows = (
                    session.query(AssetModel)
                    .options(selectinload(AssetModel.meta))
                    .filter(AssetModel.mime_type.like("image/%"))
                    .order_by(AssetModel.id)
                    .offset(offset)
                    .limit(chunk_size)
                    .all()
                )
                chunk = [self._to_domain(row) for row in rows]
            if not chunk:
                return
            yield chunk
            if len(chunk) < chunk_size:
                return
            offset += chunk_size

    def ids_with_flag(self, key: str) -> list[int]:
        with self._session_factory() as session:
            rows = (
                session.query(AssetMetaModel.asset_id, AssetMetaModel.value)
                .filter(AssetMetaModel.key == key)
                .order_by(AssetMetaModel.asset_id)
                .all()
            )
        return [asset_id for asset_id, value in rows if json.loads(value)]

    def update_asset_file(
        self,
        asset_id: int,
        *,
        path: str,
        mime_type: str,
        sizes: dict[str, str] | None = None,
    ) -> None:
        with self._session_factory() as session, handle_sqlalchemy_errors(entity="asset"):
            model = session.get(AssetModel, asset_id)
            if model is None:
                raise NotFoundError(f"asset '{asset_id}' not found")
            model.path = path
            model.filename = PurePosixPath(path).name
            model.mime_type = mime_type
            if sizes is not None:
                model.sizes_json = json.dumps(sizes)
            model.updated_at = datetime.utcnow()
            session.commit()
        self._notify(asset_id, "path")

    def _notify(self, asset_id: int, key: str) -> None:
        if key not in AssetFlag.WATCHED and key != "path":
            return
        for listener in self._listeners:
            listener(asset_id, key)

    @staticmethod
    def _to_domain(model: AssetModel) -> Asset:
        try:
            sizes = json.loads(model.sizes_json or "{}")
        except json.JSONDecodeError:
            logger.warning("asset.sizes.invalid_json", extra={"asset_id": model.id})
            sizes = {}
        return Asset(
            id=model.id,
            path=model.path,
            mime_type=model.mime_type,
            sizes=sizes,
            meta={row.key: json.loads(row.value) for row in model.meta},
        )
