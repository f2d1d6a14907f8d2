from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
import secrets
from typing import Callable

from orgscope.errors import ReauthenticationRequired, TokenRefreshError
from orgscope.msal_util.token_client import EntraTokenClient, TokenEndpointUnavailable, TokenGrantRejected
from orgscope.session.manager import TokenGrant

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DemoTokenProvider:
    """
    Stand-in identity provider for demo mode: opaque random tokens with a
    fixed lifetime. Refresh always succeeds.
    """

    def __init__(self, lifetime: timedelta = timedelta(hours=1), clock: Callable[[], datetime] = _utcnow) -> None:
        self._lifetime = lifetime
        self._clock = clock

    def issue(self, principal_id: int) -> TokenGrant:
        return TokenGrant(
            token=secrets.token_urlsafe(32),
            expires_at=self._clock() + self._lifetime,
            refresh_token=secrets.token_urlsafe(32),
        )

    def refresh(self, principal_id: int, grant: TokenGrant) -> TokenGrant:
        return self.issue(principal_id)


class EntraTokenProvider:
    """Refreshes Entra tokens with the refresh-token grant."""

    def __init__(self, client: EntraTokenClient) -> None:
        self._client = client

    def refresh(self, principal_id: int, grant: TokenGrant) -> TokenGrant:
        if not grant.refresh_token:
            raise ReauthenticationRequired("no refresh token for session")
        try:
            tokens = self._client.refresh(grant.refresh_token)
        except TokenEndpointUnavailable as e:
            raise TokenRefreshError(str(e)) from e
        except TokenGrantRejected as e:
            logger.info("Refresh grant rejected principal=%s", principal_id)
            raise ReauthenticationRequired("refresh token rejected") from e
        return TokenGrant(token=tokens.access_token, expires_at=tokens.expires_at, refresh_token=tokens.refresh_token)
