"""
Immutable, versioned view of the organization chart.

The hierarchy is held as an arena: a tuple of `EmployeeRecord`s plus
index-based parent pointers and child lists. Nothing references records by
live object links, so validation and closure computation are plain index
walks.

`build_snapshot()` is the only constructor. It rejects corrupt directory data
with `IntegrityError` so a bad version is never activated:

- duplicate employee ids
- a `manager_id` that points outside the snapshot
- a region code missing from the configured region catalog
- any cycle in the `manager_id` relation (including self-management)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Iterable, Iterator, Mapping

from orgscope.directory.records import EmployeeRecord
from orgscope.errors import IntegrityError

logger = logging.getLogger(__name__)

_UNVISITED, _VISITING, _DONE = 0, 1, 2


@dataclass(frozen=True)
class DirectorySnapshot:
    version: int
    loaded_at: datetime
    region_codes: frozenset[str]
    employees: tuple[EmployeeRecord, ...]
    parent_index: tuple[int | None, ...]
    children_index: tuple[tuple[int, ...], ...]
    _positions: Mapping[int, int] = field(repr=False, compare=False)

    def __len__(self) -> int:
        return len(self.employees)

    def __iter__(self) -> Iterator[EmployeeRecord]:
        return iter(self.employees)

    def get(self, employee_id: int) -> EmployeeRecord | None:
        pos = self._positions.get(employee_id)
        return None if pos is None else self.employees[pos]

    def manager_of(self, employee_id: int) -> EmployeeRecord | None:
        pos = self._positions.get(employee_id)
        if pos is None:
            return None
        parent = self.parent_index[pos]
        return None if parent is None else self.employees[parent]

    def direct_reports(self, employee_id: int) -> tuple[EmployeeRecord, ...]:
        pos = self._positions.get(employee_id)
        if pos is None:
            return ()
        return tuple(self.employees[c] for c in self.children_index[pos])

    def active(self) -> Iterator[EmployeeRecord]:
        return (e for e in self.employees if e.is_active)

    def edges(self) -> Iterator[tuple[int, int]]:
        """Derived (manager_id, employee_id) pairs."""
        for pos, parent in enumerate(self.parent_index):
            if parent is not None:
                yield self.employees[parent].id, self.employees[pos].id


def build_snapshot(
    records: Iterable[EmployeeRecord],
    *,
    version: int,
    region_codes: Iterable[str],
    loaded_at: datetime | None = None,
) -> DirectorySnapshot:
    """Validate directory records and freeze them into a snapshot."""

    employees = tuple(sorted(records, key=lambda e: e.id))
    regions = frozenset(region_codes)

    positions: dict[int, int] = {}
    for pos, emp in enumerate(employees):
        if emp.id in positions:
            raise IntegrityError(f"duplicate employee id {emp.id}")
        if emp.id < 0:
            raise IntegrityError(f"employee id {emp.id} is negative")
        positions[emp.id] = pos
        if emp.region is not None and emp.region not in regions:
            raise IntegrityError(f"employee {emp.id} has unmapped region {emp.region!r}")

    parents: list[int | None] = []
    children: list[list[int]] = [[] for _ in employees]
    for pos, emp in enumerate(employees):
        if emp.manager_id is None:
            parents.append(None)
            continue
        parent = positions.get(emp.manager_id)
        if parent is None:
            raise IntegrityError(f"employee {emp.id} references unknown manager {emp.manager_id}")
        parents.append(parent)
        children[parent].append(pos)

    _check_forest(employees, parents)

    snapshot = DirectorySnapshot(
        version=version,
        loaded_at=loaded_at or datetime.now(timezone.utc),
        region_codes=regions,
        employees=employees,
        parent_index=tuple(parents),
        children_index=tuple(tuple(c) for c in children),
        _positions=positions,
    )
    logger.debug("Built directory snapshot version=%s employees=%s", version, len(employees))
    return snapshot


def _check_forest(employees: tuple[EmployeeRecord, ...], parents: list[int | None]) -> None:
    """
    Three-colour walk up the parent pointers.

    Each node has at most one parent, so walking from every unvisited node
    towards its root visits each node once. Reaching a node that is still
    VISITING means the walk came back onto its own path.
    """

    state = [_UNVISITED] * len(employees)
    for start in range(len(employees)):
        path: list[int] = []
        node = start
        while node is not None and state[node] == _UNVISITED:
            state[node] = _VISITING
            path.append(node)
            node = parents[node]
        if node is not None and state[node] == _VISITING:
            raise IntegrityError(f"cycle detected in management hierarchy at employee {employees[node].id}")
        for visited in path:
            state[visited] = _DONE
