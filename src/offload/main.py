"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import contextlib
import logging

import uvicorn
from fastapi import FastAPI

from .config import AppConfig, load_config
from .dependencies import include_routers
from .logging import configure_logging
from .workers.queue_worker import OffloadWorker

logger = logging.getLogger(__name__)


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    configure_logging()
    cfg = config or load_config()
    app = FastAPI(title="Media Offload")
    include_routers(app, cfg)
    app.state.worker_task = None
    app.state.worker_shutdown_event = None

    async def _startup_worker() -> None:
        if not cfg.worker_enabled:
            logger.info("Background worker startup skipped: disabled by configuration")
            return
        shutdown_event = asyncio.Event()
        worker = OffloadWorker(
            processing=app.state.processing_service,
            config=cfg,
            poll_interval=cfg.worker_poll_seconds,
        )
        app.state.worker_task = asyncio.create_task(
            worker.run_forever(shutdown_event=shutdown_event),
            name="offload-worker",
        )
        app.state.worker_shutdown_event = shutdown_event

    async def _shutdown_worker() -> None:
        shutdown_event = getattr(app.state, "worker_shutdown_event", None)
        if shutdown_event is not None:
            shutdown_event.set()
        task: asyncio.Task[None] | None = getattr(app.state, "worker_task", None)
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        app.state.worker_task = None
        app.state.worker_shutdown_event = None

    app.add_event_handler("startup", _startup_worker)
    app.add_event_handler("shutdown", _shutdown_worker)
    return app


if __name__ == "__main__":
    uvicorn.run("src.offload.main:create_app", factory=True, host="0.0.0.0", port=8000)
