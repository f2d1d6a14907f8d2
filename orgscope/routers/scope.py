from __future__ import annotations

from fastapi import APIRouter, Depends

from orgscope.scope.requests import ScopeResult
from orgscope.schemas.scope import ReportEmbedOut, ScopeOut
from orgscope.security.dependencies import current_scope, get_services
from orgscope.services import ScopeServices

router = APIRouter(tags=["scope"])


@router.get("/scope", response_model=ScopeOut)
def get_scope(result: ScopeResult = Depends(current_scope)) -> ScopeOut:
    scope = result.scope
    artifacts = result.artifacts
    return ScopeOut(
        request_id=result.request_id,
        anchor_id=scope.anchor_id,
        actual_level=result.decision.ceiling,
        effective_level=scope.effective_level,
        requested_level=result.decision.requested_level,
        clamped=result.decision.clamped,
        member_count=scope.member_count,
        regions=sorted(scope.regions),
        snapshot_version=scope.snapshot_version,
        stale=result.stale,
        power_bi_filters=artifacts.power_bi.to_payload(),
        catalog_predicate=artifacts.catalog.to_dict(),
        assistant_context=artifacts.assistant.to_dict(),
    )


@router.get("/embed/report", response_model=ReportEmbedOut)
def report_embed_config(
    result: ScopeResult = Depends(current_scope),
    services: ScopeServices = Depends(get_services),
) -> ReportEmbedOut:
    # The embed token itself comes from the BI service; this is the filter half.
    power_bi = services.scope_config.power_bi
    return ReportEmbedOut(
        id=power_bi.report_id,
        embed_url=power_bi.embed_url,
        filters=result.artifacts.power_bi.to_payload(),
        stale=result.stale,
    )
