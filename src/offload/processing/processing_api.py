"""Routes that run batches and report configuration state."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status

from .processing_models import BatchReport
from .processing_service import ProcessingService

router = APIRouter(prefix="/api", tags=["processing"])


def get_processing_service(request: Request) -> ProcessingService:
    try:
        return request.app.state.processing_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("ProcessingService is not configured") from exc


def _respond(report: BatchReport) -> dict[str, Any]:
    body = report.as_dict()
    if report.error == "not_configured":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"status": "error", "reason": "not_configured", "messages": report.messages},
        )
    return body


@router.post("/optimization/process")
async def process_optimization(
    service: ProcessingService = Depends(get_processing_service),
) -> dict[str, Any]:
    """Run one optimization batch; ``continue`` tells the caller to call again."""
    return _respond(await service.process_optimization_batch())


@router.post("/migration/process")
async def process_migration(
    service: ProcessingService = Depends(get_processing_service),
) -> dict[str, Any]:
    return _respond(await service.process_migration_batch())


@router.get("/config/status")
def config_status(service: ProcessingService = Depends(get_processing_service)) -> dict[str, Any]:
    return service.check_config_status()


@router.get("/config/test-connection")
async def test_connection(service: ProcessingService = Depends(get_processing_service)) -> dict[str, Any]:
    return await service.test_connections()
