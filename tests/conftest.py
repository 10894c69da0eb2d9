from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.offload.config import (
    AppConfig,
    MediaLayout,
    OptimizerSettings,
    ProcessingLimits,
    StorageSettings,
)
from src.offload.db.db_init import init_db


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)
    init_db(engine, factory)
    return factory


@pytest.fixture
def media_root(tmp_path: Path) -> Path:
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture
def layout(media_root: Path) -> MediaLayout:
    return MediaLayout(root=media_root, base_url="https://example.test/uploads")


@pytest.fixture
def storage_settings() -> StorageSettings:
    return StorageSettings(api_key="storage-key", storage_zone="media-zone")


@pytest.fixture
def app_config(engine, session_factory, layout, storage_settings) -> AppConfig:
    return AppConfig(
        media=layout,
        optimizer=OptimizerSettings(api_key="optimizer-key"),
        storage=storage_settings,
        limits=ProcessingLimits(upload_delay_seconds=0),
        database_url="sqlite://",
        engine=engine,
        session_factory=session_factory,
    )

