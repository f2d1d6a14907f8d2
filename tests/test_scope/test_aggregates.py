"""Aggregates over a catalog session scoped by the row filter hook."""

from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import func, select

from conftest import REGIONS
from orgscope.db.filters import SCOPE_INFO_KEY
from orgscope.directory.records import RoleLevel
from orgscope.directory.snapshot import build_snapshot
from orgscope.models.directory import ComplianceRecord, Employee
from orgscope.scope.aggregates import OVERALL_LABEL, UNASSIGNED_LABEL, compliance_breakdown, latest_period
from orgscope.scope.compiler import FilterCompiler, FilterSchema
from orgscope.scope.resolver import HierarchyResolver
from orgscope.security.config import load_scope_config

CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "scope_config.yaml"
COMPILER = FilterCompiler(FilterSchema.from_config(load_scope_config(CONFIG_PATH)))

PERIOD = date(2024, 2, 29)
OLDER = date(2024, 1, 31)
TEAM_110_RATES = [70.0, 71.0, 72.0, 73.0, 74.0, 75.0, 71.1]


@pytest.fixture
def catalog(db_session, sample_records):
    for record in sample_records:
        db_session.add(
            Employee(
                employee_id=record.id,
                manager_id=record.manager_id,
                email=record.email,
                role_level=record.role_level.value,
                region=record.region,
                status=record.status.value,
            )
        )
    db_session.flush()

    rates = dict(zip(range(111, 118), TEAM_110_RATES))
    for record in sample_records:
        db_session.add(ComplianceRecord(employee_id=record.id, period=OLDER, compliance_rate=10.0))
        db_session.add(ComplianceRecord(employee_id=record.id, period=PERIOD, compliance_rate=rates.get(record.id, 50.0)))
    db_session.flush()
    return db_session


@pytest.fixture
def resolver(sample_records, clock):
    return HierarchyResolver(build_snapshot(sample_records, version=1, region_codes=REGIONS, loaded_at=clock()))


def scope_session(db, resolver, anchor_id, level):
    scope = resolver.compute_scope(resolver.resolve_anchor(anchor_id), level)
    db.info[SCOPE_INFO_KEY] = COMPILER.compile_all(scope).catalog
    return scope


def test_unscoped_session_sees_everything(catalog):
    assert catalog.scalar(select(func.count()).select_from(Employee)) == 30
    assert latest_period(catalog) == PERIOD


def test_manager_scope_filters_employees_and_compliance_rows(catalog, resolver):
    scope = scope_session(catalog, resolver, 110, RoleLevel.MANAGER)

    ids = set(catalog.scalars(select(Employee.employee_id)).all())
    record_ids = set(catalog.scalars(select(ComplianceRecord.employee_id).where(ComplianceRecord.period == PERIOD)).all())

    assert ids == set(scope.member_ids) == set(range(111, 118))
    assert record_ids == ids


def test_seven_report_team_mean(catalog, resolver):
    scope_session(catalog, resolver, 110, RoleLevel.MANAGER)

    overall = compliance_breakdown(catalog).overall

    assert overall.label == OVERALL_LABEL
    assert overall.member_count == 7
    assert overall.value == 72.3


def test_region_form_scope_includes_cross_region_report(catalog, resolver):
    scope = scope_session(catalog, resolver, 30, RoleLevel.DIRECTOR)
    assert scope.region_closed

    ids = set(catalog.scalars(select(Employee.employee_id)).all())
    assert ids == {30, 207, 300, 301, 302}


def test_inactive_employees_never_counted(catalog, resolver):
    scope_session(catalog, resolver, 1, RoleLevel.SVP)

    ids = set(catalog.scalars(select(Employee.employee_id)).all())
    assert 99 not in ids and 208 not in ids

    breakdown = compliance_breakdown(catalog)
    assert breakdown.overall.member_count == 28
    assert [a.label for a in breakdown.regions] == sorted(REGIONS)
    assert sum(a.member_count for a in breakdown.regions) == breakdown.overall.member_count


def test_region_filter_narrows_within_scope(catalog, resolver):
    scope_session(catalog, resolver, 20, RoleLevel.DIRECTOR)

    breakdown = compliance_breakdown(catalog)
    emea = breakdown.region("EMEA")
    apac = breakdown.region("APAC")

    assert emea.label == "EMEA" and emea.member_count == 8
    assert apac.member_count == 0 and apac.value == 0.0


def test_explicit_period(catalog, resolver):
    scope_session(catalog, resolver, 110, RoleLevel.MANAGER)
    assert compliance_breakdown(catalog, period=OLDER).overall.value == 10.0


def test_empty_catalog(db_session):
    breakdown = compliance_breakdown(db_session)
    assert breakdown.overall.member_count == 0
    assert breakdown.regions == ()


def test_employees_without_region_form_their_own_group(catalog):
    catalog.add(Employee(employee_id=130, manager_id=10, email="e130@example.com", role_level="Manager", region=None))
    catalog.add(ComplianceRecord(employee_id=130, period=PERIOD, compliance_rate=90.0))
    catalog.flush()

    breakdown = compliance_breakdown(catalog)

    assert [a.label for a in breakdown.regions] == ["APAC", "EMEA", "NA", UNASSIGNED_LABEL]
    assert breakdown.region(UNASSIGNED_LABEL).member_count == 1
    assert sum(a.member_count for a in breakdown.regions) == breakdown.overall.member_count
