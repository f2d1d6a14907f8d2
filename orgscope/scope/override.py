"""
Role override ("view as") controller.

An override lets a principal look at the dashboard as a lower or equal
hierarchy level without changing who they are. It can never raise the level:
`requested <= actual ceiling` is checked on every request, including requests
that bypass the UI toggle and hit the API directly.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import threading
from typing import Callable

from orgscope.directory.records import RoleLevel
from orgscope.errors import AuthorizationError
from orgscope.logging_config import AUDIT_LOGGER_NAME

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)


@dataclass(frozen=True)
class Principal:
    principal_id: int
    actual_ceiling: RoleLevel


@dataclass(frozen=True)
class OverrideAuditEntry:
    principal_id: int
    actual_ceiling: RoleLevel
    requested_level: RoleLevel
    accepted: bool
    at: datetime


@dataclass(frozen=True)
class OverrideDecision:
    level: RoleLevel
    ceiling: RoleLevel
    requested_level: RoleLevel | None
    clamped: bool


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoleOverrideController:
    def __init__(self, *, clock: Callable[[], datetime] = _utcnow, audit_capacity: int = 1000) -> None:
        self._clock = clock
        self._entries: deque[OverrideAuditEntry] = deque(maxlen=audit_capacity)
        self._lock = threading.Lock()

    def request_override(self, principal: Principal, requested_level: RoleLevel) -> RoleLevel:
        """Return `requested_level` if it is within the ceiling, else raise `AuthorizationError`."""
        requested_level = RoleLevel(requested_level)
        accepted = requested_level <= principal.actual_ceiling
        entry = OverrideAuditEntry(
            principal_id=principal.principal_id,
            actual_ceiling=principal.actual_ceiling,
            requested_level=requested_level,
            accepted=accepted,
            at=self._clock(),
        )
        with self._lock:
            self._entries.append(entry)

        if not accepted:
            audit_logger.warning(
                "Role override rejected principal=%s ceiling=%s requested=%s at=%s",
                entry.principal_id,
                entry.actual_ceiling.value,
                entry.requested_level.value,
                entry.at.isoformat(),
            )
            raise AuthorizationError(
                f"override to {requested_level.value} exceeds ceiling {principal.actual_ceiling.value}"
            )

        audit_logger.info(
            "Role override accepted principal=%s ceiling=%s requested=%s at=%s",
            entry.principal_id,
            entry.actual_ceiling.value,
            entry.requested_level.value,
            entry.at.isoformat(),
        )
        return requested_level

    def decide(self, principal: Principal, requested_level: RoleLevel | None) -> OverrideDecision:
        """
        Level to resolve for this request.

        No override means the actual ceiling. A rejected override degrades to
        the actual ceiling (`clamped=True`) instead of failing the request.
        """

        ceiling = principal.actual_ceiling
        if requested_level is None:
            return OverrideDecision(level=ceiling, ceiling=ceiling, requested_level=None, clamped=False)
        try:
            level = self.request_override(principal, requested_level)
        except AuthorizationError:
            return OverrideDecision(
                level=ceiling, ceiling=ceiling, requested_level=RoleLevel(requested_level), clamped=True
            )
        return OverrideDecision(level=level, ceiling=ceiling, requested_level=level, clamped=False)

    def entries(self) -> list[OverrideAuditEntry]:
        with self._lock:
            return list(self._entries)
