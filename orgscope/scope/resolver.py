"""
Hierarchy resolver: who may an anchor see at a given level.

Pure functions over one immutable `DirectorySnapshot`:

    Manager   Active direct reports of the anchor.
    Director  Active employees in the anchor's region, plus the Manager set
              (a direct report may sit in another region; the union keeps
              Manager <= Director without relying on data shape).
    SVP       All Active employees; every configured region.

Inactive employees are never members, at any level.
"""

from __future__ import annotations

import logging

from orgscope.directory.records import EmployeeRecord, RoleLevel
from orgscope.directory.snapshot import DirectorySnapshot
from orgscope.errors import RegionNotConfigured, UnknownPrincipal
from orgscope.scope.types import DataScope

logger = logging.getLogger(__name__)


class HierarchyResolver:
    def __init__(self, snapshot: DirectorySnapshot) -> None:
        self._snapshot = snapshot

    @property
    def snapshot(self) -> DirectorySnapshot:
        return self._snapshot

    def resolve_anchor(self, principal_id: int) -> EmployeeRecord:
        anchor = self._snapshot.get(principal_id)
        if anchor is None or not anchor.is_active:
            logger.info("Unknown or inactive principal=%s snapshot=%s", principal_id, self._snapshot.version)
            raise UnknownPrincipal(principal_id)
        return anchor

    def resolve_by_email(self, email: str) -> EmployeeRecord:
        wanted = email.strip().lower()
        for employee in self._snapshot:
            if employee.email.lower() == wanted:
                return self.resolve_anchor(employee.id)
        raise UnknownPrincipal(email)

    def compute_scope(self, anchor: EmployeeRecord, role_level: RoleLevel) -> DataScope:
        if anchor.region is None:
            raise RegionNotConfigured(anchor.id)

        role_level = RoleLevel(role_level)
        direct = frozenset(e.id for e in self._snapshot.direct_reports(anchor.id) if e.is_active)

        if role_level is RoleLevel.MANAGER:
            members = direct
            regions = frozenset({anchor.region})
        elif role_level is RoleLevel.DIRECTOR:
            in_region = frozenset(e.id for e in self._snapshot.active() if e.region == anchor.region)
            members = in_region | direct
            regions = frozenset({anchor.region})
        elif role_level is RoleLevel.SVP:
            members = frozenset(e.id for e in self._snapshot.active())
            regions = self._snapshot.region_codes
        else:  # pragma: no cover (closed enum)
            raise ValueError(f"unsupported role level {role_level!r}")

        scope = DataScope(
            anchor_id=anchor.id,
            effective_level=role_level,
            member_ids=members,
            regions=regions,
            snapshot_version=self._snapshot.version,
            region_closed=members == self._active_in(regions),
        )
        logger.debug(
            "Scope anchor=%s level=%s members=%s regions=%s region_closed=%s",
            anchor.id,
            role_level.value,
            scope.member_count,
            sorted(regions),
            scope.region_closed,
        )
        return scope

    def _active_in(self, regions: frozenset[str]) -> frozenset[int]:
        return frozenset(e.id for e in self._snapshot.active() if e.region in regions)
