from __future__ import annotations

from dataclasses import dataclass

from orgscope.directory.records import RoleLevel


@dataclass(frozen=True)
class AuthzContext:
    """
    Per-request authorization context, attached to `request.state.authz`.

    Holds no token material. `actual_level` is the principal's real level
    from the directory; it is only looked up for routes with a level
    requirement and is None otherwise.
    """

    session_id: str
    principal_id: int
    actual_level: RoleLevel | None = None
