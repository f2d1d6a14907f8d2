from __future__ import annotations

from collections.abc import Callable

from orgscope.directory.records import RoleLevel


def require_level(level: RoleLevel | str) -> Callable:
    """
    Decorator-style level requirement for a route.

    Implementation detail:
    - This decorator does NOT perform auth itself.
    - It attaches metadata that the global security dependency reads
      *after* routing, alongside the route rules from the scope config.
    - The check is against the principal's actual level; a role override
      never satisfies it.
    """

    required = RoleLevel(level)

    def decorator(fn: Callable) -> Callable:
        existing = getattr(fn, "__scope_min_level__", None)
        if existing is None or required > existing:
            setattr(fn, "__scope_min_level__", required)
        return fn

    return decorator
