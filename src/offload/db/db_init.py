"""Database initialization helpers."""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db_models import Base, SettingModel

DEFAULT_SETTINGS = {
    "schema_version": "1",
}


def init_db(engine: Engine, session_factory: sessionmaker[Session]) -> None:
    """Create tables and seed default settings if the database is empty."""
    Base.metadata.create_all(engine)

    with session_factory() as session:
        _seed_settings(session)
        session.commit()


def _seed_settings(session: Session) -> None:
    for key, value in DEFAULT_SETTINGS.items():
        if session.get(SettingModel, key) is None:
            session.add(SettingModel(key=key, value=value, updated_by="init"))
