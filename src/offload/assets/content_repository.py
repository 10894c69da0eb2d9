"""Persistence for stored content that references media URLs."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from sqlalchemy.orm import Session

from ..db.db_models import ContentFieldModel
from ..exceptions import NotFoundError
from .assets_models import ContentField


class SqlContentRepository:
    """Content store backed by the ``content_field`` table."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def add_field(
        self,
        *,
        name: str,
        value: str,
        kind: str = "body",
        owner_id: int | None = None,
    ) -> int:
        with self._session_factory() as session:
            model = ContentFieldModel(owner_id=owner_id, kind=kind, name=name, value=value)
            session.add(model)
            session.commit()
            return model.id

    def get_field(self, field_id: int) -> ContentField:
        with self._session_factory() as session:
            model = session.get(ContentFieldModel, field_id)
            if model is None:
                raise NotFoundError(f"content field '{field_id}' not found")
            return self._to_domain(model)

    def find_containing(self, needle: str) -> list[ContentField]:
        if not needle:
            return []
        with self._session_factory() as session:
            rows = (
                session.query(ContentFieldModel)
                .filter(ContentFieldModel.value.contains(needle, autoescape=True))
                .order_by(ContentFieldModel.id)
                .all()
            )
            return [self._to_domain(row) for row in rows]

    def update_value(self, field_id: int, value: str) -> None:
        with self._session_factory() as session:
            model = session.get(ContentFieldModel, field_id)
            if model is None:
                raise NotFoundError(f"content field '{field_id}' not found")
            model.value = value
            model.updated_at = datetime.utcnow()
            session.commit()

    @staticmethod
    def _to_domain(model: ContentFieldModel) -> ContentField:
        return ContentField(
            id=model.id,
            owner_id=model.owner_id,
            kind=model.kind,
            name=model.name,
            value=model.value,
        )
