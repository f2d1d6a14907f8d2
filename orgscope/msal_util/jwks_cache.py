"""
Signing-key cache for Entra access tokens.

Entra signs access tokens with rotating RSA keys published at the tenant's
JWKS endpoint. Keys are cached for a TTL; a token whose `kid` is not in the
cache triggers one forced reload (key rotation) before it is rejected.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

import requests
from jwt import PyJWK

logger = logging.getLogger(__name__)


class JWKSCache:
    """Thread-safe TTL cache of the tenant's JSON Web Key Set."""

    def __init__(
        self,
        jwks_uri: str,
        ttl_seconds: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        timeout: float = 10.0,
    ) -> None:
        self._uri = jwks_uri
        self._ttl = ttl_seconds
        self._clock = clock
        self._timeout = timeout
        self._keys: dict[str, dict[str, Any]] = {}
        self._loaded_at: float | None = None
        self._lock = threading.Lock()

    def _load(self) -> dict[str, dict[str, Any]]:
        resp = requests.get(self._uri, timeout=self._timeout)
        resp.raise_for_status()
        keys = {k["kid"]: k for k in resp.json().get("keys") or [] if k.get("kid")}
        with self._lock:
            self._keys = keys
            self._loaded_at = self._clock()
        logger.debug("JWKS reloaded uri=%s keys=%s", self._uri, len(keys))
        return keys

    def _current(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            loaded_at = self._loaded_at
            keys = self._keys
        if loaded_at is None or self._clock() - loaded_at >= self._ttl:
            return self._load()
        return keys

    def get_signing_key(self, kid: str) -> PyJWK | None:
        """Return the key for `kid`, reloading once if it is unknown."""
        key = self._current().get(kid)
        if key is None:
            logger.info("Signing key id not cached; reloading JWKS for key rotation")
            key = self._load().get(kid)
        return PyJWK.from_dict(key) if key is not None else None
