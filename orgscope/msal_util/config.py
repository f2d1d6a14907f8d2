"""Entra ID configuration from environment variables. No hardcoded secrets."""

from __future__ import annotations

import os
from dataclasses import dataclass

_LOGIN_HOST = "https://login.microsoftonline.com"


def _env(key: str) -> str | None:
    """Stripped value of `key`; None when unset or blank."""
    value = (os.environ.get(key) or "").strip()
    return value or None


def _env_int(key: str, default: int) -> int:
    value = _env(key)
    if value is None or not value.lstrip("-").isdigit():
        return default
    return int(value)


@dataclass(frozen=True)
class EntraConfig:
    """
    Azure Entra ID settings used by token validation, token refresh and the
    Graph directory reader.

    Required:
        AZURE_TENANT_ID: Tenant (directory) ID.
        AZURE_CLIENT_ID: Dashboard API application (client) ID; default audience.

    Optional:
        AZURE_AUDIENCE: Expected audience when it differs from the client id.
        AZURE_CLIENT_SECRET: Needed for refresh-token grants by a confidential
            client and for app-only Graph directory reads.
        AZURE_EMPLOYEE_ID_CLAIM: Token claim carrying the numeric employee id
            (default "employeeid"); email matching is used when absent.
        CLOCK_SKEW_SECONDS: Tolerance for exp/nbf (default 120).
        JWKS_CACHE_TTL_SECONDS: How long signing keys are cached (default 3600).
    """

    tenant_id: str
    client_id: str
    audience: str | None = None
    clock_skew_seconds: int = 120
    jwks_cache_ttl_seconds: int = 3600
    client_secret: str | None = None
    employee_id_claim: str = "employeeid"

    @property
    def expected_audience(self) -> str:
        return self.audience or self.client_id

    @property
    def issuer(self) -> str:
        return f"{_LOGIN_HOST}/{self.tenant_id}/v2.0"

    @property
    def jwks_uri(self) -> str:
        return f"{_LOGIN_HOST}/{self.tenant_id}/discovery/v2.0/keys"

    @property
    def token_url(self) -> str:
        return f"{_LOGIN_HOST}/{self.tenant_id}/oauth2/v2.0/token"

    @classmethod
    def from_environ(cls) -> EntraConfig:
        tenant_id = _env("AZURE_TENANT_ID")
        client_id = _env("AZURE_CLIENT_ID")
        if tenant_id is None or client_id is None:
            raise ValueError("AZURE_TENANT_ID and AZURE_CLIENT_ID must be set")
        return cls(
            tenant_id=tenant_id,
            client_id=client_id,
            audience=_env("AZURE_AUDIENCE"),
            clock_skew_seconds=_env_int("CLOCK_SKEW_SECONDS", 120),
            jwks_cache_ttl_seconds=_env_int("JWKS_CACHE_TTL_SECONDS", 3600),
            client_secret=_env("AZURE_CLIENT_SECRET"),
            employee_id_claim=_env("AZURE_EMPLOYEE_ID_CLAIM") or "employeeid",
        )
