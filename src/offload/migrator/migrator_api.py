"""Per-asset migration audit and repair routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..exceptions import NotConfiguredError, NotFoundError
from .migrator_service import MigratorService

router = APIRouter(prefix="/api/assets", tags=["assets"])


def get_migrator_service(request: Request) -> MigratorService:
    try:
        return request.app.state.migrator_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("MigratorService is not configured") from exc


def _not_configured(exc: NotConfiguredError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"status": "error", "reason": "not_configured", "missing": exc.missing},
    )


def _not_found(asset_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"status": "error", "reason": "asset_not_found", "asset_id": asset_id},
    )


@router.get("/verify")
def verify_all(service: MigratorService = Depends(get_migrator_service)) -> dict[str, Any]:
    reports = service.batch_verify_migration()
    summary: dict[str, int] = {}
    for report in reports:
        summary[report.status.value] = summary.get(report.status.value, 0) + 1
    return {"summary": summary, "assets": [report.as_dict() for report in reports]}


@router.get("/{asset_id}/verify")
def verify_asset(asset_id: int, service: MigratorService = Depends(get_migrator_service)) -> dict[str, Any]:
    try:
        return service.verify_migration_completeness(asset_id).as_dict()
    except NotFoundError as exc:
        raise _not_found(asset_id) from exc


@router.post("/{asset_id}/fix")
async def fix_asset(asset_id: int, service: MigratorService = Depends(get_migrator_service)) -> dict[str, Any]:
    try:
        result = await service.fix_incomplete_migration(asset_id)
    except NotFoundError as exc:
        raise _not_found(asset_id) from exc
    except NotConfiguredError as exc:
        raise _not_configured(exc) from exc
    return result.as_dict()


@router.post("/{asset_id}/force-migrate")
async def force_migrate(asset_id: int, service: MigratorService = Depends(get_migrator_service)) -> dict[str, Any]:
    try:
        migrated = await service.force_migrate_asset(asset_id)
    except NotConfiguredError as exc:
        raise _not_configured(exc) from exc
    return {"asset_id": asset_id, "success": migrated}


@router.delete("/{asset_id}/remote")
async def delete_remote(asset_id: int, service: MigratorService = Depends(get_migrator_service)) -> dict[str, Any]:
    try:
        deleted = await service.delete_from_remote(asset_id)
    except NotConfiguredError as exc:
        raise _not_configured(exc) from exc
    return {"asset_id": asset_id, "success": deleted}
