"""
Domain exceptions.

Pure modules (directory, scope, session) raise these; the web layer maps them
to HTTP responses in `orgscope.main`. Messages never contain token material.
"""

from __future__ import annotations


class ScopeError(Exception):
    """Base class for every orgscope domain error."""


class IntegrityError(ScopeError):
    """Directory data is corrupt (cycle, duplicate id, dangling manager, unmapped region)."""


class RegionNotConfigured(ScopeError):
    """The anchor employee has no region; fatal for that anchor only."""

    def __init__(self, employee_id: int) -> None:
        super().__init__(f"employee {employee_id} has no region assigned")
        self.employee_id = employee_id


class UnknownPrincipal(ScopeError):
    """The principal is absent from the snapshot or inactive."""

    def __init__(self, principal_id: int | str) -> None:
        super().__init__(f"unknown or inactive principal {principal_id!r}")
        self.principal_id = principal_id


class AuthorizationError(ScopeError):
    """A role override exceeds the principal's actual ceiling."""


class DirectoryUnavailable(ScopeError):
    """Transient failure reading the directory collaborator."""


class NoDataAvailable(ScopeError):
    """No fresh scope and no unexpired last-known-good scope to serve."""


class TokenRefreshError(ScopeError):
    """Transient failure refreshing a token with the identity provider."""


class ReauthenticationRequired(ScopeError):
    """The session is gone, expired or hard-failed; the user must sign in again."""


class StaleScopeError(ScopeError):
    """Artifacts were requested from an invalidated scope request."""


class PredicateValidationError(ScopeError):
    """An identifier failed validation before being placed in a catalog predicate."""
