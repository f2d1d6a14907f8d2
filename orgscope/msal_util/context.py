"""Identity extracted from a validated Entra access token."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class TokenContext:
    """
    Claims the dashboard needs to open a session.

    Authorization level is *not* taken from the token: the directory snapshot
    is the source of truth for a principal's role level.
    """

    user_id: str
    """Canonical user id from token (oid, falling back to sub)."""

    email: str | None
    """preferred_username / upn; used to match the directory when no employee id claim is present."""

    employee_id: int | None
    """Numeric employee id from the configured custom claim, if issued."""

    expires_at: datetime | None
    """Token expiry (exp claim) as an aware UTC datetime."""

    scopes: tuple[str, ...] = ()
    """OAuth2 scopes from token (scp claim)."""

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "user_id": self.user_id,
            "email": self.email,
            "employee_id": self.employee_id,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "scopes": list(self.scopes),
        }
