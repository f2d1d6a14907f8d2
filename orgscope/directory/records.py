from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class RoleLevel(str, Enum):
    """Hierarchy levels, ordered Manager < Director < SVP."""

    MANAGER = "Manager"
    DIRECTOR = "Director"
    SVP = "SVP"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def __le__(self, other: object) -> bool:
        if not isinstance(other, RoleLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, RoleLevel):
            return NotImplemented
        return self.rank < other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, RoleLevel):
            return NotImplemented
        return self.rank >= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, RoleLevel):
            return NotImplemented
        return self.rank > other.rank


_RANKS = {RoleLevel.MANAGER: 0, RoleLevel.DIRECTOR: 1, RoleLevel.SVP: 2}


class EmployeeStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


@dataclass(frozen=True)
class EmployeeRecord:
    """One employee as delivered by the directory collaborator."""

    id: int
    manager_id: int | None
    email: str
    role_level: RoleLevel
    region: str | None
    country: str | None = None
    location: str | None = None
    department: str | None = None
    status: EmployeeStatus = EmployeeStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == EmployeeStatus.ACTIVE
