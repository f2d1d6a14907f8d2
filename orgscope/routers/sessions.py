from __future__ import annotations

import logging

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status

from orgscope.directory.records import EmployeeRecord
from orgscope.msal_util.validator import ValidationError
from orgscope.scope.resolver import HierarchyResolver
from orgscope.schemas.scope import SessionCreateIn, SessionOut
from orgscope.security.auth import demo_principal_id, extract_bearer
from orgscope.security.dependencies import get_authz, get_services
from orgscope.security.context import AuthzContext
from orgscope.services import ScopeServices
from orgscope.session.manager import TokenGrant

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("", response_model=SessionOut, status_code=status.HTTP_201_CREATED)
def create_session(
    request: Request,
    body: SessionCreateIn | None = Body(default=None),
    services: ScopeServices = Depends(get_services),
) -> SessionOut:
    """
    Sign in. The bearer credential is the employee id (demo) or an Entra ID
    access token (entra); the returned `session_id` is the bearer for every
    other route.
    """

    credential = extract_bearer(request, services.scope_config)
    if credential is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing credential")

    resolver = HierarchyResolver(services.store.read().snapshot)

    if services.validator is None:
        anchor = resolver.resolve_anchor(demo_principal_id(credential))
        grant = services.token_provider.issue(anchor.id)
    else:
        anchor, grant = _entra_login(services, resolver, credential, body)

    view = services.sessions.create(anchor.id, grant)
    return SessionOut(
        session_id=view.session_id,
        principal_id=view.principal_id,
        role_level=anchor.role_level,
        expires_at=view.expires_at,
    )


def _entra_login(
    services: ScopeServices,
    resolver: HierarchyResolver,
    token: str,
    body: SessionCreateIn | None,
) -> tuple[EmployeeRecord, TokenGrant]:
    try:
        ctx = services.validator.validate_and_extract(token)
    except ValidationError as e:
        logger.info("Rejected login token: %s", e)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid access token") from e

    if ctx.employee_id is not None:
        anchor = resolver.resolve_anchor(ctx.employee_id)
    elif ctx.email:
        anchor = resolver.resolve_by_email(ctx.email)
    else:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token does not identify an employee")

    grant = TokenGrant(token=token, expires_at=ctx.expires_at, refresh_token=body.refresh_token if body else None)
    return anchor, grant


@router.delete("/current", status_code=status.HTTP_204_NO_CONTENT)
def end_session(
    authz: AuthzContext = Depends(get_authz),
    services: ScopeServices = Depends(get_services),
) -> None:
    services.sessions.terminate(authz.session_id, "logout")
