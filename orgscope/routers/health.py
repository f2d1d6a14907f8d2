from __future__ import annotations

from fastapi import APIRouter, Depends

from orgscope.security.dependencies import get_services
from orgscope.services import ScopeServices

router = APIRouter(tags=["health"])


@router.get("/health")
def health(services: ScopeServices = Depends(get_services)) -> dict[str, object]:
    return {
        "status": "blocked" if services.store.blocked is not None else "ok",
        "snapshot_version": services.store.version,
        "active_sessions": services.sessions.active_count(),
    }
