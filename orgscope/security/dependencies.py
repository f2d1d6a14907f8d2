from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from orgscope.db.session import get_db
from orgscope.directory.records import RoleLevel
from orgscope.scope.requests import ScopeResult
from orgscope.scope.resolver import HierarchyResolver
from orgscope.security.auth import extract_bearer
from orgscope.security.config import ScopeConfig
from orgscope.security.context import AuthzContext
from orgscope.services import ScopeServices


def get_services(request: Request) -> ScopeServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not built. Did app startup run?")
    return services


def get_scope_config(services: ScopeServices = Depends(get_services)) -> ScopeConfig:
    return services.scope_config


def get_authz(request: Request) -> AuthzContext:
    authz = getattr(request.state, "authz", None)
    if authz is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return authz


def enforce_security(request: Request, services: ScopeServices = Depends(get_services)) -> None:
    """
    Global security dependency (configuration-driven).

    Runs after routing, so it sees both the route rule from the scope config
    and any `require_level` metadata on the endpoint. Level requirements are
    checked against the principal's actual directory level, never against a
    role override.
    """

    config = services.scope_config
    rule = config.match(request.url.path, request.method.upper())

    endpoint = request.scope.get("endpoint")
    decorator_level = getattr(endpoint, "__scope_min_level__", None) if endpoint else None

    min_level = rule.min_level
    if decorator_level is not None and (min_level is None or decorator_level > min_level):
        min_level = decorator_level

    if not (rule.auth_required or min_level is not None):
        return

    session_id = extract_bearer(request, config)
    if session_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing session token")

    # ReauthenticationRequired propagates to the 401 handler.
    view = services.sessions.get(session_id)

    actual_level = None
    if min_level is not None:
        snapshot = services.store.read().snapshot
        actual_level = HierarchyResolver(snapshot).resolve_anchor(view.principal_id).role_level
        if actual_level < min_level:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient level. Required: {min_level.value}",
            )

    request.state.authz = AuthzContext(
        session_id=view.session_id,
        principal_id=view.principal_id,
        actual_level=actual_level,
    )


def current_scope(
    request: Request,
    role_override: RoleLevel | None = Query(default=None),
    authz: AuthzContext = Depends(get_authz),
    services: ScopeServices = Depends(get_services),
) -> ScopeResult:
    """
    Resolve (and activate) the session's scope for this request.

    `role_override` is only a request: an override above the principal's
    actual level is clamped to it by the override controller.
    """

    result = services.coordinator.request_scope(authz.session_id, authz.principal_id, role_override)
    request.state.catalog_predicate = result.artifacts.catalog
    return result


def get_scoped_db(request: Request, result: ScopeResult = Depends(current_scope)) -> Generator[Session, None, None]:
    """`get_db` for routes that read the catalog; runs after the scope is resolved."""
    yield from get_db(request)
