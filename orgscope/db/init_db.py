from __future__ import annotations

from datetime import date
import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session, sessionmaker

from orgscope.db.base import Base
from orgscope.models.directory import ComplianceRecord, Employee

logger = logging.getLogger(__name__)

# (region, country, location)
_REGIONS = (
    ("NA", "US", "New York"),
    ("EMEA", "GB", "London"),
    ("APAC", "SG", "Singapore"),
)
# Report counts per manager in each region; 4 stays below the privacy floor.
_TEAM_SIZES = (4, 7, 9)
_PERIODS = (date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31))

SVP_ID = 1000


def init_db(engine: Engine, session_factory: sessionmaker, *, seed: bool = True) -> None:
    """
    Create tables and, when `seed` is set, load the demo org chart.

    The seed is deterministic so demo bearer ids stay stable across restarts:
    1000 is the SVP, 1001/1002/1003 the NA/EMEA/APAC directors.
    """

    Base.metadata.create_all(bind=engine)
    if not seed:
        return
    with session_factory() as db:
        if _has_seed_data(db):
            return
        _seed(db)
        logger.info("Seeded demo org chart")


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(Employee.employee_id).limit(1)).first() is not None


def _rate(employee_id: int, period: date) -> float:
    return float(40 + (employee_id * 37 + period.month * 11) % 60)


def _seed(db: Session) -> None:
    employees: list[Employee] = []

    def add(employee_id: int, manager_id: int | None, level: str, region: str, country: str, location: str, **kw):
        employee = Employee(
            employee_id=employee_id,
            manager_id=manager_id,
            email=f"employee{employee_id}@example.com",
            role_level=level,
            region=region,
            country=country,
            location=location,
            department=kw.get("department", "Operations"),
            status=kw.get("status", "Active"),
        )
        employees.append(employee)
        return employee

    add(SVP_ID, None, "SVP", "NA", "US", "New York", department="Executive")

    next_id = 2000
    for index, (region, country, location) in enumerate(_REGIONS, start=1):
        director_id = SVP_ID + index
        add(director_id, SVP_ID, "Director", region, country, location)

        for size in _TEAM_SIZES:
            manager_id = next_id
            next_id += 1
            add(manager_id, director_id, "Manager", region, country, location)
            for _ in range(size):
                add(next_id, manager_id, "Manager", region, country, location, department="Field")
                next_id += 1

        # Leavers stay in the directory but never in scope.
        add(next_id, director_id, "Manager", region, country, location, status="Inactive")
        next_id += 1

    db.add_all(employees)
    db.flush()

    db.add_all(
        ComplianceRecord(employee_id=e.employee_id, period=period, compliance_rate=_rate(e.employee_id, period))
        for e in employees
        for period in _PERIODS
    )
    db.commit()
