"""Application configuration builder."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db

OPTIMIZER_ENDPOINTS = {
    "eu": "https://api-eu.nofb.nexwinds.com",
    "me": "https://api-eu.nofb.nexwinds.com",
}
DEFAULT_OPTIMIZER_ENDPOINT = "https://api-us.nofb.nexwinds.com"
DEFAULT_STORAGE_ENDPOINT = "https://storage.bunnycdn.com"


@dataclass(slots=True)
class MediaLayout:
    root: Path
    base_url: str
    path_remaps: dict[str, str] = field(default_factory=dict)

    def local_url(self, relative_path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{relative_path.lstrip('/')}"


@dataclass(slots=True)
class OptimizerSettings:
    api_key: str
    region: str = "us"
    timeout_seconds: float = 120.0

    @property
    def base_url(self) -> str:
        return OPTIMIZER_ENDPOINTS.get(self.region.lower(), DEFAULT_OPTIMIZER_ENDPOINT)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


@dataclass(slots=True)
class StorageSettings:
    api_key: str
    storage_zone: str
    custom_hostname: str = ""
    endpoint: str = DEFAULT_STORAGE_ENDPOINT
    primary_timeout_seconds: float = 300.0
    variant_timeout_seconds: float = 60.0
    stream_threshold_bytes: int = 5 * 1024 * 1024

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.storage_zone)

    @property
    def missing(self) -> list[str]:
        missing = []
        if not self.api_key:
            missing.append("BUNNY_API_KEY")
        if not self.storage_zone:
            missing.append("BUNNY_STORAGE_ZONE")
        return missing

    @property
    def public_host(self) -> str:
        if self.custom_hostname:
            return self.custom_hostname.strip().strip("/")
        return f"{self.storage_zone}.b-cdn.net"

    def public_url(self, relative_path: str) -> str:
        return f"https://{self.public_host}/{relative_path.lstrip('/')}"


@dataclass(slots=True)
class ProcessingLimits:
    max_file_size_kb: int = 150
    auto_migrate: bool = False
    file_versioning: bool = False
    commerce_sizes: bool = False
    optimization_batch_size: int = 5
    migration_batch_size: int = 3
    max_retries: int = 3
    upload_delay_seconds: float = 0.2
    scan_chunk_size: int = 100


@dataclass(slots=True)
class AppConfig:
    media: MediaLayout
    optimizer: OptimizerSettings
    storage: StorageSettings
    limits: ProcessingLimits
    database_url: str
    engine: Engine
    session_factory: sessionmaker[Session]
    worker_enabled: bool = False
    worker_poll_seconds: float = 60.0


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def parse_path_remaps(raw: str) -> dict[str, str]:
    """Parse ``old=new;old2=new2`` into a prefix map."""
    remaps: dict[str, str] = {}
    for chunk in raw.split(";"):
        if "=" not in chunk:
            continue
        old, new = chunk.split("=", 1)
        if old.strip():
            remaps[old.strip()] = new.strip()
    return remaps


def clamp_optimization_batch_size(value: int) -> int:
    return min(max(1, value), 5)


def load_config() -> AppConfig:
    """Load configuration from environment (SQLite by default)."""
    root = Path(os.getenv("MEDIA_ROOT", "media/uploads"))
    root.mkdir(parents=True, exist_ok=True)
    media = MediaLayout(
        root=root,
        base_url=os.getenv("MEDIA_BASE_URL", "http://localhost/uploads"),
        path_remaps=parse_path_remaps(os.getenv("OFFLOAD_PATH_REMAPS", "")),
    )

    optimizer = OptimizerSettings(
        api_key=os.getenv("OPTIMIZER_API_KEY", ""),
        region=os.getenv("OPTIMIZER_API_REGION", "us"),
        timeout_seconds=float(os.getenv("OPTIMIZER_TIMEOUT_SECONDS", 120)),
    )

    storage = StorageSettings(
        api_key=os.getenv("BUNNY_API_KEY", ""),
        storage_zone=os.getenv("BUNNY_STORAGE_ZONE", ""),
        custom_hostname=os.getenv("BUNNY_CUSTOM_HOSTNAME", ""),
        endpoint=os.getenv("BUNNY_STORAGE_ENDPOINT", DEFAULT_STORAGE_ENDPOINT),
    )

    limits = ProcessingLimits(
        max_file_size_kb=int(os.getenv("OFFLOAD_MAX_FILE_SIZE_KB", 150)),
        auto_migrate=_env_flag("OFFLOAD_AUTO_MIGRATE"),
        file_versioning=_env_flag("OFFLOAD_FILE_VERSIONING"),
        commerce_sizes=_env_flag("OFFLOAD_COMMERCE_SIZES"),
        optimization_batch_size=clamp_optimization_batch_size(
            int(os.getenv("OFFLOAD_OPTIMIZATION_BATCH_SIZE", 5))
        ),
        migration_batch_size=max(1, int(os.getenv("OFFLOAD_MIGRATION_BATCH_SIZE", 3))),
        max_retries=int(os.getenv("OFFLOAD_MAX_RETRIES", 3)),
        upload_delay_seconds=float(os.getenv("OFFLOAD_UPLOAD_DELAY_SECONDS", 0.2)),
    )

    database_url = os.getenv("DATABASE_URL", "sqlite:///offload.db")
    engine = create_engine(database_url, future=True)
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)

    init_db(engine, session_factory)

    return AppConfig(
        media=media,
        optimizer=optimizer,
        storage=storage,
        limits=limits,
        database_url=database_url,
        engine=engine,
        session_factory=session_factory,
        worker_enabled=_env_flag("OFFLOAD_BACKGROUND_WORKER"),
        worker_poll_seconds=float(os.getenv("OFFLOAD_WORKER_POLL_SECONDS", 60)),
    )
