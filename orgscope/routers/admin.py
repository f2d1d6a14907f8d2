from __future__ import annotations

from fastapi import APIRouter, Depends

from orgscope.directory.records import RoleLevel
from orgscope.schemas.scope import OverrideAuditOut, RefreshOut
from orgscope.security.decorators import require_level
from orgscope.security.dependencies import get_services
from orgscope.services import ScopeServices

router = APIRouter(prefix="/admin", tags=["admin"])


# Level requirement comes from the route rules in config/scope_config.yaml.
@router.post("/directory/refresh", response_model=RefreshOut)
def refresh_directory(services: ScopeServices = Depends(get_services)) -> RefreshOut:
    # IntegrityError blocks the store and surfaces as 503.
    snapshot = services.store.invalidate()
    return RefreshOut(snapshot_version=snapshot.version, employees=len(snapshot))


@router.get("/overrides", response_model=list[OverrideAuditOut])
@require_level(RoleLevel.SVP)
def list_overrides(services: ScopeServices = Depends(get_services)) -> list[OverrideAuditOut]:
    return [OverrideAuditOut.model_validate(entry) for entry in services.overrides.entries()]
