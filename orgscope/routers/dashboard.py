from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from orgscope.directory.records import RoleLevel
from orgscope.scope.aggregates import compliance_breakdown
from orgscope.scope.privacy import Surface
from orgscope.scope.requests import ScopeResult
from orgscope.schemas.scope import DashboardSummaryOut, MetricOut
from orgscope.security.dependencies import current_scope, get_scoped_db, get_services
from orgscope.services import ScopeServices

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/summary", response_model=DashboardSummaryOut)
def dashboard_summary(
    result: ScopeResult = Depends(current_scope),
    db: Session = Depends(get_scoped_db),
    services: ScopeServices = Depends(get_services),
) -> DashboardSummaryOut:
    # Rows are scoped by the catalog predicate on the session (orgscope/db/filters.py).
    breakdown = compliance_breakdown(db)
    overall, regions = services.guard.evaluate_breakdown(breakdown.overall, breakdown.regions, Surface.DASHBOARD_TILE)
    results = [overall] if result.scope.effective_level is RoleLevel.MANAGER else [overall, *regions]
    tiles = [MetricOut.from_guard(r) for r in results]
    return DashboardSummaryOut(
        effective_level=result.scope.effective_level,
        clamped=result.decision.clamped,
        stale=result.stale,
        tiles=tiles,
    )
