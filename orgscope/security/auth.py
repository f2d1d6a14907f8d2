from __future__ import annotations

import logging

from fastapi import HTTPException, Request, status

from orgscope.security.config import ScopeConfig

logger = logging.getLogger(__name__)


def extract_bearer(request: Request, config: ScopeConfig) -> str | None:
    """
    Read `Authorization: Bearer <token>`.

    - On `POST /sessions` the token is the login credential: an integer
      employee id in demo mode, an Entra ID access token in entra mode.
    - Everywhere else the token is the session id returned at login.

    Returns None when the header is absent; malformed headers are a 400.
    """

    header_name = config.auth.authorization_header
    bearer_prefix = config.auth.bearer_prefix

    raw = request.headers.get(header_name)
    if not raw:
        logger.info("Missing Authorization header (auth required) path=%s method=%s", request.url.path, request.method)
        return None

    prefix = f"{bearer_prefix} "
    if not raw.startswith(prefix):
        logger.warning("Invalid Authorization header format path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header_name}. Expected '{bearer_prefix} <token>'.",
        )

    token = raw[len(prefix) :].strip()
    if not token:
        logger.warning("Empty bearer token path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header_name}. Missing token after '{bearer_prefix}'.",
        )
    return token


def demo_principal_id(token: str) -> int:
    try:
        principal_id = int(token)
    except ValueError as exc:
        logger.warning("Demo login bearer is not an integer employee id")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid bearer token for demo (expected integer employee id).",
        ) from exc
    if principal_id < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Employee id must be non-negative.")
    return principal_id
