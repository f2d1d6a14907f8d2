"""
Pytest fixtures for the test suite.

Data-layer tests use an in-memory SQLite engine and a session that rolls back
after each test, so tests do not affect each other. Domain tests share a small
sample org (see `sample_records`) and a controllable clock. API tests run the
app against a seeded scenario org (see `_scenario_rows`) through `TestClient`.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest
from hypothesis import strategies as st
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from orgscope.directory.records import EmployeeRecord, EmployeeStatus, RoleLevel
from orgscope.directory.snapshot import build_snapshot
from orgscope.security.config import load_scope_config
from orgscope.services import build_services
from orgscope.settings import Settings


TEST_DB_URL = "sqlite:///:memory:"
REGIONS = frozenset({"NA", "EMEA", "APAC"})


class FakeClock:
    """Callable clock for code that takes `clock=`; advance it explicitly."""

    def __init__(self, start: datetime = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def employee(
    employee_id: int,
    manager_id: int | None,
    level: RoleLevel = RoleLevel.MANAGER,
    region: str | None = "NA",
    *,
    active: bool = True,
) -> EmployeeRecord:
    return EmployeeRecord(
        id=employee_id,
        manager_id=manager_id,
        email=f"e{employee_id}@example.com",
        role_level=level,
        region=region,
        status=EmployeeStatus.ACTIVE if active else EmployeeStatus.INACTIVE,
    )


@st.composite
def forests(draw) -> list[EmployeeRecord]:
    """Random acyclic org charts: each employee's manager has a smaller id."""
    size = draw(st.integers(min_value=1, max_value=25))
    records = []
    for i in range(size):
        parent = draw(st.one_of(st.none(), st.integers(min_value=0, max_value=i - 1))) if i else None
        records.append(
            employee(
                i + 1,
                None if parent is None else parent + 1,
                draw(st.sampled_from(list(RoleLevel))),
                draw(st.sampled_from(["NA", "EMEA", "APAC", None])),
                active=draw(st.booleans()),
            )
        )
    return records


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sample_records() -> list[EmployeeRecord]:
    """
    1 SVP (NA)
      10 Director NA
        100 Manager NA -> 101..104
        110 Manager NA -> 111..117
      20 Director EMEA
        200 Manager EMEA -> 201..206, 207 (APAC), 208 (inactive)
      30 Director APAC
        300 Manager APAC -> 301, 302
      99 inactive (NA)
    """

    records = [
        employee(1, None, RoleLevel.SVP, "NA"),
        employee(10, 1, RoleLevel.DIRECTOR, "NA"),
        employee(20, 1, RoleLevel.DIRECTOR, "EMEA"),
        employee(30, 1, RoleLevel.DIRECTOR, "APAC"),
        employee(99, 1, region="NA", active=False),
        employee(100, 10, region="NA"),
        employee(110, 10, region="NA"),
        employee(200, 20, region="EMEA"),
        employee(300, 30, region="APAC"),
    ]
    records += [employee(i, 100, region="NA") for i in range(101, 105)]
    records += [employee(i, 110, region="NA") for i in range(111, 118)]
    records += [employee(i, 200, region="EMEA") for i in range(201, 207)]
    records.append(employee(207, 200, region="APAC"))
    records.append(employee(208, 200, region="EMEA", active=False))
    records += [employee(i, 300, region="APAC") for i in (301, 302)]
    return records


@pytest.fixture
def sample_snapshot(sample_records, clock):
    return build_snapshot(sample_records, version=1, region_codes=REGIONS, loaded_at=clock())


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from orgscope.db import filters as _filters  # noqa: F401  (register row filter hook)
    from orgscope.db.base import Base
    from orgscope.models import directory as _models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db_session(tables):
    """
    Provide a Session bound to the test DB; roll back after each test.

    Use this in tests that need a database (e.g. data layer tests). The
    transaction is rolled back so the next test gets a clean state.
    """
    connection = tables.connect()
    transaction = connection.begin()
    TestSession = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        class_=Session,
    )
    session = TestSession()
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def session_factory(tables):
    """Sessions on the per-test engine; in-memory SQLite keeps one connection per thread."""
    return sessionmaker(bind=tables, autocommit=False, autoflush=False, class_=Session)


# ---- API fixtures ---------------------------------------------------------------------

CONFIG_PATH = Path(__file__).resolve().parents[1] / "config" / "scope_config.yaml"
SCENARIO_PERIOD = date(2024, 3, 31)
TEAM_OF_SEVEN_RATES = (70.0, 71.0, 72.0, 73.0, 74.0, 75.0, 71.1)


def _scenario_rows() -> list[tuple[int, int | None, str, str, str, float]]:
    """
    (employee_id, manager_id, level, region, status, rate)

    1 SVP (NA)
      10 Director NA
        100 Manager -> 101..104            (4 reports)
        110 Manager -> 111..117            (7 reports, mean 72.3)
        99 inactive
      20 Director EMEA
        200 Manager -> 2001..2041
        210 Manager -> 2101..2141          (85 Active in EMEA: 42 at 60.0, 43 at 76.7)
    """

    rows = [
        (1, None, "SVP", "NA", "Active", 50.0),
        (10, 1, "Director", "NA", "Active", 50.0),
        (99, 10, "Manager", "NA", "Inactive", 0.0),
        (100, 10, "Manager", "NA", "Active", 50.0),
        (110, 10, "Manager", "NA", "Active", 50.0),
    ]
    rows += [(i, 100, "Manager", "NA", "Active", 80.0) for i in range(101, 105)]
    rows += [(i, 110, "Manager", "NA", "Active", rate) for i, rate in zip(range(111, 118), TEAM_OF_SEVEN_RATES)]

    emea = [(20, 1, "Director"), (200, 20, "Manager"), (210, 20, "Manager")]
    emea += [(i, 200, "Manager") for i in range(2001, 2042)]
    emea += [(i, 210, "Manager") for i in range(2101, 2142)]
    for position, (employee_id, manager_id, level) in enumerate(sorted(emea)):
        rows.append((employee_id, manager_id, level, "EMEA", "Active", 60.0 if position < 42 else 76.7))
    return rows


def seed_scenario(session_factory: sessionmaker) -> None:
    from orgscope.models.directory import ComplianceRecord, Employee

    with session_factory() as db:
        for employee_id, manager_id, level, region, status, rate in _scenario_rows():
            db.add(
                Employee(
                    employee_id=employee_id,
                    manager_id=manager_id,
                    email=f"e{employee_id}@example.com",
                    role_level=level,
                    region=region,
                    status=status,
                )
            )
            db.add(ComplianceRecord(employee_id=employee_id, period=SCENARIO_PERIOD, compliance_rate=rate))
        db.commit()


@pytest.fixture
def api_session_factory():
    """One shared in-memory database for the app and the test body."""
    from orgscope.db import filters as _filters  # noqa: F401
    from orgscope.db.base import Base
    from orgscope.models import directory as _models  # noqa: F401

    api_engine = create_engine(TEST_DB_URL, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=api_engine)
    factory = sessionmaker(bind=api_engine, autocommit=False, autoflush=False, class_=Session)
    seed_scenario(factory)
    yield factory
    api_engine.dispose()


@pytest.fixture
def app_settings():
    return Settings(
        auth_mode="demo",
        directory_source="database",
        seed_demo_data=False,
        directory_ttl_seconds=300,
        directory_max_stale_seconds=600,
        scope_ttl_seconds=900,
    )


@pytest.fixture
def services(app_settings, api_session_factory, clock):
    services = build_services(
        app_settings,
        load_scope_config(CONFIG_PATH),
        session_factory=api_session_factory,
        clock=clock,
        sleep=lambda seconds: None,
    )
    services.store.refresh()
    return services


@pytest.fixture
def client(services):
    from orgscope.main import create_app

    return TestClient(create_app(services))


def login(client: TestClient, employee_id: int) -> dict[str, str]:
    """Open a demo session and return the headers that carry it."""
    resp = client.post("/sessions", headers={"Authorization": f"Bearer {employee_id}"})
    assert resp.status_code == 201, resp.text
    return {"Authorization": f"Bearer {resp.json()['session_id']}"}
