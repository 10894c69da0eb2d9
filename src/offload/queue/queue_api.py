"""Routes for inspecting and managing work queues."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..processing.processing_api import get_processing_service
from ..processing.processing_service import ProcessingService
from .queue_models import QueueName

router = APIRouter(prefix="/api/queues", tags=["queues"])


class QueueItemsRequest(BaseModel):
    paths: list[str] = Field(min_length=1)


def _queue_name(name: str) -> QueueName:
    try:
        return QueueName(name)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"status": "error", "reason": "unknown_queue", "queue": name},
        ) from exc


@router.get("/{name}")
def read_queue(name: str, service: ProcessingService = Depends(get_processing_service)) -> dict[str, Any]:
    return service.queue_status(_queue_name(name))


@router.post("/{name}/items")
def add_items(
    name: str,
    payload: QueueItemsRequest,
    service: ProcessingService = Depends(get_processing_service),
) -> dict[str, Any]:
    queue = service.queue(_queue_name(name))
    added = queue.add_batch(payload.paths)
    return {"queue": queue.name.value, "added": added, "size": queue.size()}


@router.delete("/{name}")
def clear_queue(name: str, service: ProcessingService = Depends(get_processing_service)) -> dict[str, Any]:
    queue = service.queue(_queue_name(name))
    return {"queue": queue.name.value, "cleared": queue.clear(), "size": 0}


@router.post("/{name}/scan")
def scan_queue(name: str, service: ProcessingService = Depends(get_processing_service)) -> dict[str, Any]:
    queue_name = _queue_name(name)
    added = service.scan(queue_name)
    return {"queue": queue_name.value, "added": added, "size": service.queue(queue_name).size()}


@router.post("/{name}/reinitialize")
def reinitialize_queue(
    name: str,
    service: ProcessingService = Depends(get_processing_service),
) -> dict[str, Any]:
    return service.reinitialize_queue(_queue_name(name))
