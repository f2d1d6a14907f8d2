"""
Microsoft Graph reader for the organization directory.

Uses an app-only (client credentials) token. Required application permission:
`User.Read.All` (or `Directory.Read.All`).

`list_users()` walks `GET /users` page by page (`@odata.nextLink`) with each
user's manager expanded, so the whole org chart comes back in one pass
without a call per user.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

from .config import EntraConfig

logger = logging.getLogger(__name__)

GRAPH_BASE = "https://graph.microsoft.com/v1.0"

USER_FIELDS = (
    "id",
    "employeeId",
    "mail",
    "userPrincipalName",
    "jobTitle",
    "department",
    "country",
    "officeLocation",
    "accountEnabled",
)


class GraphUnavailable(Exception):
    """Graph or the token endpoint could not be reached or answered with an error."""


class _AppTokenCache:
    """Caches the client-credentials Graph token until shortly before expiry."""

    def __init__(self) -> None:
        self._token: str | None = None
        self._expires_at: float = 0.0

    def get_or_refresh(self, config: EntraConfig) -> str:
        now = time.monotonic()
        if self._token and now < self._expires_at:
            return self._token
        self._token, expires_in = _request_app_token(config)
        # 5 minute margin; Graph app tokens usually live about an hour.
        self._expires_at = now + max(expires_in - 300, 60)
        return self._token


_app_token_cache = _AppTokenCache()


def _request_app_token(config: EntraConfig) -> tuple[str, int]:
    if not config.client_secret:
        raise GraphUnavailable("AZURE_CLIENT_SECRET required for Graph directory reads")
    data = {
        "client_id": config.client_id,
        "client_secret": config.client_secret,
        "scope": "https://graph.microsoft.com/.default",
        "grant_type": "client_credentials",
    }
    try:
        resp = requests.post(config.token_url, data=data, timeout=10)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise GraphUnavailable(f"app token request failed: {type(e).__name__}") from e
    body = resp.json()
    access_token = body.get("access_token")
    if not access_token:
        raise GraphUnavailable("no access_token in Graph token response")
    return access_token, int(body.get("expires_in", 3600))


def list_users(config: EntraConfig, page_size: int = 999) -> list[dict[str, Any]]:
    """
    Return every directory user with `manager` expanded to its `employeeId`.

    Unlike a best-effort lookup, a partial org chart is worse than none here:
    any failure mid-pagination raises `GraphUnavailable` and discards the pages
    collected so far.
    """

    token = _app_token_cache.get_or_refresh(config)
    headers = {"Authorization": f"Bearer {token}", "ConsistencyLevel": "eventual"}
    url: str | None = f"{GRAPH_BASE}/users"
    params: dict[str, str] | None = {
        "$select": ",".join(USER_FIELDS),
        "$expand": "manager($select=employeeId)",
        "$top": str(page_size),
    }
    users: list[dict[str, Any]] = []

    while url:
        try:
            resp = requests.get(url, headers=headers, params=params, timeout=30)
        except requests.RequestException as e:
            raise GraphUnavailable(f"Graph request failed: {type(e).__name__}") from e
        if resp.status_code != 200:
            logger.warning("Graph /users returned status=%s", resp.status_code)
            raise GraphUnavailable(f"Graph /users status {resp.status_code}")
        body = resp.json()
        users.extend(body.get("value") or [])
        url = body.get("@odata.nextLink")
        params = None  # nextLink already carries the query

    logger.debug("Graph returned %s directory users", len(users))
    return users
