from __future__ import annotations

from dataclasses import dataclass

from orgscope.directory.records import RoleLevel


@dataclass(frozen=True)
class DataScope:
    """
    Authorization boundary for one (anchor, level) pair.

    `region_closed` is True when `member_ids` is exactly the set of Active
    employees whose region is in `regions`; only then may a filter express
    the scope by region instead of by enumerating ids.
    """

    anchor_id: int
    effective_level: RoleLevel
    member_ids: frozenset[int]
    regions: frozenset[str]
    snapshot_version: int
    region_closed: bool

    @property
    def member_count(self) -> int:
        return len(self.member_ids)

    def contains(self, employee_id: int) -> bool:
        return employee_id in self.member_ids
