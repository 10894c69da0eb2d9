"""Routes exposing eligibility funnels and per-file checks."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from .eligibility_service import EligibilityService

router = APIRouter(prefix="/api", tags=["eligibility"])


def get_eligibility_service(request: Request) -> EligibilityService:
    try:
        return request.app.state.eligibility_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("EligibilityService is not configured") from exc


@router.get("/stats/optimization")
def optimization_stats(service: EligibilityService = Depends(get_eligibility_service)) -> dict[str, Any]:
    return service.get_optimization_stats().as_dict()


@router.get("/stats/migration")
def migration_stats(service: EligibilityService = Depends(get_eligibility_service)) -> dict[str, Any]:
    return service.get_migration_stats().as_dict()


@router.get("/eligibility")
def check_eligibility(
    path: str,
    service: EligibilityService = Depends(get_eligibility_service),
) -> dict[str, Any]:
    optimization = service.optimization_decision(path)
    migration = service.migration_decision(path)
    return {
        "path": path,
        "optimization": {"eligible": optimization.eligible, "reason": optimization.reason},
        "migration": {"eligible": migration.eligible, "reason": migration.reason},
    }
