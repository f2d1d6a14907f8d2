"""
Directory collaborators.

A source returns the complete list of `EmployeeRecord`s for one snapshot.
Transport problems surface as `DirectoryUnavailable` (retried by the store);
data problems surface as `IntegrityError` (never retried).
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orgscope.directory.records import EmployeeRecord, EmployeeStatus, RoleLevel
from orgscope.errors import DirectoryUnavailable, IntegrityError
from orgscope.models.directory import Employee
from orgscope.msal_util.config import EntraConfig
from orgscope.msal_util.graph_client import GraphUnavailable, list_users
from orgscope.security.config import ScopeConfig

logger = logging.getLogger(__name__)


class DirectorySource(Protocol):
    def fetch(self) -> list[EmployeeRecord]: ...


class StaticDirectorySource:
    """Fixed record list; for demos and tests."""

    def __init__(self, records: Iterable[EmployeeRecord]) -> None:
        self._records = list(records)

    def replace(self, records: Iterable[EmployeeRecord]) -> None:
        self._records = list(records)

    def fetch(self) -> list[EmployeeRecord]:
        return list(self._records)


class DatabaseDirectorySource:
    """Reads the org chart from the catalog's `employees` table."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def fetch(self) -> list[EmployeeRecord]:
        try:
            with self._session_factory() as db:
                rows = db.scalars(select(Employee).order_by(Employee.employee_id)).all()
                return [_record_from_row(row) for row in rows]
        except SQLAlchemyError as e:
            logger.warning("Directory database read failed: %s", type(e).__name__)
            raise DirectoryUnavailable("directory database unavailable") from e


def _record_from_row(row: Employee) -> EmployeeRecord:
    try:
        level = RoleLevel(row.role_level)
        status = EmployeeStatus(row.status)
    except ValueError as e:
        raise IntegrityError(f"employee {row.employee_id} has invalid level or status") from e
    return EmployeeRecord(
        id=row.employee_id,
        manager_id=row.manager_id,
        email=row.email,
        role_level=level,
        region=row.region,
        country=row.country,
        location=row.location,
        department=row.department,
        status=status,
    )


class GraphDirectorySource:
    """
    Reads the org chart from Microsoft Graph.

    Mapping:
    - `employeeId` (numeric) is the employee id; users without one (rooms,
      service accounts) are skipped.
    - `manager.employeeId` is the manager id.
    - `country` maps to a region through `country_regions`; a country with no
      mapping is an integrity failure rather than a silently region-less user.
    - `jobTitle` maps to a role level through `title_levels`.
    - `accountEnabled: false` means Inactive.
    """

    def __init__(self, entra: EntraConfig, scope_config: ScopeConfig) -> None:
        self._entra = entra
        self._scope_config = scope_config

    def fetch(self) -> list[EmployeeRecord]:
        try:
            users = list_users(self._entra)
        except GraphUnavailable as e:
            raise DirectoryUnavailable(str(e)) from e

        records: list[EmployeeRecord] = []
        skipped = 0
        for user in users:
            record = self._to_record(user)
            if record is None:
                skipped += 1
                continue
            records.append(record)
        if skipped:
            logger.info("Skipped %s Graph users without a numeric employeeId", skipped)
        return records

    def _to_record(self, user: dict[str, Any]) -> EmployeeRecord | None:
        employee_id = _numeric(user.get("employeeId"))
        if employee_id is None:
            return None

        manager = user.get("manager") or {}
        country = user.get("country")
        region = self._scope_config.region_for_country(country)
        if country and region is None:
            raise IntegrityError(f"no region mapping for country {country!r} (employee {employee_id})")

        email = user.get("mail") or user.get("userPrincipalName") or ""
        return EmployeeRecord(
            id=employee_id,
            manager_id=_numeric(manager.get("employeeId")),
            email=str(email).lower(),
            role_level=self._scope_config.level_for_title(user.get("jobTitle")),
            region=region,
            country=country,
            location=user.get("officeLocation"),
            department=user.get("department"),
            status=EmployeeStatus.ACTIVE if user.get("accountEnabled", True) else EmployeeStatus.INACTIVE,
        )


def _numeric(raw: Any) -> int | None:
    if raw is None:
        return None
    text = str(raw).strip()
    return int(text) if text.isdigit() else None
