"""
Validate Entra-signed access tokens presented at dashboard sign-in.

Nothing in the token is trusted until the signature (JWKS), issuer, audience
and lifetime (exp/nbf, with clock skew) all check out. Only then are the
claims turned into a `TokenContext`.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

import jwt

from .config import EntraConfig
from .context import TokenContext
from .jwks_cache import JWKSCache

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Raised when token validation fails. Never carries the token."""


def _get_kid(token: str) -> str | None:
    try:
        header = jwt.get_unverified_header(token)
    except jwt.InvalidTokenError:
        return None
    return header.get("kid") if isinstance(header, dict) else None


def _employee_id(raw: Any) -> int | None:
    # Directory ids are integers; bool is an int subclass and never a valid id.
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def _extract_claims(payload: dict[str, Any], employee_id_claim: str = "employeeid") -> TokenContext:
    """
    Build a `TokenContext` from a validated payload.

    * oid is preferred over sub: sub is pairwise per app registration.
    * preferred_username (or upn) is the sign-in email, used only for
      matching the directory record when no employee id claim is issued.
    * the employee id claim is an optional claim configured in Entra.
    """

    user_id = payload.get("oid") or payload.get("sub") or ""

    email = payload.get("preferred_username") or payload.get("upn") or payload.get("email")
    email = str(email).strip().lower() if email else None

    exp = payload.get("exp")
    expires_at = datetime.fromtimestamp(int(exp), tz=timezone.utc) if isinstance(exp, (int, float)) else None

    scopes: tuple[str, ...] = ()
    scp = payload.get("scp")
    if isinstance(scp, str):
        scopes = tuple(s for s in scp.split() if s)
    elif isinstance(scp, list):
        scopes = tuple(str(s) for s in scp)

    return TokenContext(
        user_id=str(user_id),
        email=email,
        employee_id=_employee_id(payload.get(employee_id_claim)),
        expires_at=expires_at,
        scopes=scopes,
    )


class EntraTokenValidator:
    """Validates Entra access tokens against the tenant JWKS."""

    def __init__(self, config: EntraConfig | None = None, jwks: JWKSCache | None = None) -> None:
        self._config = config or EntraConfig.from_environ()
        self._jwks = jwks or JWKSCache(self._config.jwks_uri, self._config.jwks_cache_ttl_seconds)

    @property
    def config(self) -> EntraConfig:
        return self._config

    def validate_and_extract(self, token: str) -> TokenContext:
        """Validate the token and return its context, or raise `ValidationError`."""
        kid = _get_kid(token)
        if not kid:
            logger.debug("Token missing or invalid kid")
            raise ValidationError("Invalid token: missing key id")

        signing_key = self._jwks.get_signing_key(kid)
        if signing_key is None:
            logger.debug("No signing key found for kid")
            raise ValidationError("Invalid token: unknown signing key")

        try:
            payload = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self._config.expected_audience,
                issuer=self._config.issuer,
                leeway=self._config.clock_skew_seconds,
                options={"require": ["exp", "iss", "aud"]},
            )
        except jwt.ExpiredSignatureError as e:
            logger.info("Token expired")
            raise ValidationError("Token expired") from e
        except jwt.InvalidIssuerError as e:
            logger.info("Token invalid issuer")
            raise ValidationError("Invalid token: issuer") from e
        except jwt.InvalidAudienceError as e:
            logger.info("Token invalid audience")
            raise ValidationError("Invalid token: audience") from e
        except jwt.InvalidTokenError as e:
            logger.info("Token invalid: %s", type(e).__name__)
            raise ValidationError("Invalid token") from e

        return _extract_claims(payload, self._config.employee_id_claim)
