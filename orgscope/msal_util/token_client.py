"""
OAuth2 refresh-token grant against the Entra token endpoint.

The dashboard treats the identity provider as a black box: it only needs a
new `{access_token, expires_in, refresh_token}` for an existing grant. Network
errors and 5xx/429 responses are transient (`TokenEndpointUnavailable`); any
other rejection means the grant is dead and the user must sign in again.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging

import requests

from .config import EntraConfig

logger = logging.getLogger(__name__)


class TokenEndpointUnavailable(Exception):
    """Transient token endpoint failure; safe to retry."""


class TokenGrantRejected(Exception):
    """The refresh token was rejected; retrying will not help."""


@dataclass(frozen=True)
class RefreshedTokens:
    access_token: str
    expires_at: datetime
    refresh_token: str | None


class EntraTokenClient:
    def __init__(self, config: EntraConfig, scopes: tuple[str, ...] = ("openid", "profile", "offline_access")) -> None:
        self._config = config
        self._scopes = scopes

    def refresh(self, refresh_token: str) -> RefreshedTokens:
        data = {
            "client_id": self._config.client_id,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "scope": " ".join(self._scopes),
        }
        if self._config.client_secret:
            data["client_secret"] = self._config.client_secret

        try:
            resp = requests.post(self._config.token_url, data=data, timeout=10)
        except requests.RequestException as e:
            logger.warning("Token endpoint request failed: %s", type(e).__name__)
            raise TokenEndpointUnavailable(type(e).__name__) from e

        if resp.status_code == 429 or resp.status_code >= 500:
            logger.warning("Token endpoint unavailable status=%s", resp.status_code)
            raise TokenEndpointUnavailable(f"status {resp.status_code}")
        if resp.status_code != 200:
            logger.info("Refresh token rejected status=%s", resp.status_code)
            raise TokenGrantRejected(f"status {resp.status_code}")

        body = resp.json()
        access_token = body.get("access_token")
        if not access_token:
            raise TokenGrantRejected("no access_token in token response")
        expires_in = int(body.get("expires_in", 3600))
        return RefreshedTokens(
            access_token=access_token,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            # Entra may rotate the refresh token; keep the old one when it does not.
            refresh_token=body.get("refresh_token") or refresh_token,
        )
