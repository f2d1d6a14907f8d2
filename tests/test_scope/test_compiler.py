"""Tests for the filter compiler: shape, validation and cross-system equivalence."""

from pathlib import Path

import pytest
from hypothesis import HealthCheck, assume, given, settings
from hypothesis import strategies as st
from sqlalchemy import select, text

from conftest import REGIONS, forests
from orgscope.directory.records import RoleLevel
from orgscope.directory.snapshot import build_snapshot
from orgscope.errors import PredicateValidationError
from orgscope.models.directory import Employee
from orgscope.scope.compiler import (
    AssistantContext,
    CatalogPredicate,
    Dimension,
    FilterCompiler,
    FilterSchema,
    FilterTarget,
    PowerBIFilter,
)
from orgscope.scope.resolver import HierarchyResolver
from orgscope.scope.types import DataScope
from orgscope.security.config import load_scope_config

CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "scope_config.yaml"
SCHEMA = FilterSchema.from_config(load_scope_config(CONFIG_PATH))
COMPILER = FilterCompiler(SCHEMA)


def _scope(snapshot, anchor_id, level):
    resolver = HierarchyResolver(snapshot)
    return resolver.compute_scope(resolver.resolve_anchor(anchor_id), level)


def test_manager_scope_enumerates_ids(sample_snapshot):
    artifacts = COMPILER.compile_all(_scope(sample_snapshot, 100, RoleLevel.MANAGER))

    payload = artifacts.power_bi.to_payload()
    assert payload == [
        {
            "$schema": "http://powerbi.com/product/schema#basic",
            "target": {"table": "Employees", "column": "EmployeeID"},
            "operator": "In",
            "values": [101, 102, 103, 104],
            "filterType": 1,
            "requireSingleSelection": False,
        }
    ]
    assert artifacts.catalog.clause == "employee_id IN (:member_0, :member_1, :member_2, :member_3)"
    assert artifacts.catalog.bind_params == {"member_0": 101, "member_1": 102, "member_2": 103, "member_3": 104}
    assert artifacts.assistant.to_dict() == {
        "scopeLevel": "Manager",
        "regions": ["NA"],
        "statuses": ["Active"],
        "memberIds": [101, 102, 103, 104],
    }


def test_region_closed_director_scope_uses_region_form(sample_snapshot):
    artifacts = COMPILER.compile_all(_scope(sample_snapshot, 20, RoleLevel.DIRECTOR))

    columns = [f["target"]["column"] for f in artifacts.power_bi.to_payload()]
    assert columns == ["Region", "Status"]
    assert artifacts.catalog.clause == "region IN (:region_0) AND status IN (:status_0)"
    assert artifacts.catalog.bind_params == {"region_0": "EMEA", "status_0": "Active"}
    assert "memberIds" not in artifacts.assistant.to_dict()


def test_non_region_closed_director_scope_falls_back_to_ids(sample_snapshot):
    artifacts = COMPILER.compile_all(_scope(sample_snapshot, 200, RoleLevel.DIRECTOR))
    assert [c.dimension for c in artifacts.catalog.conditions] == [Dimension.EMPLOYEE_ID]
    assert 207 in artifacts.assistant.member_ids


def test_empty_scope_selects_nothing(sample_snapshot):
    artifacts = COMPILER.compile_all(_scope(sample_snapshot, 101, RoleLevel.MANAGER))
    assert artifacts.catalog.clause == "1 = 0"
    assert artifacts.catalog.bind_params == {}
    # An empty `In` list would leave the report unfiltered.
    assert artifacts.power_bi.to_payload()[0]["values"] == [-1]
    assert not any(artifacts.power_bi.admits(e) for e in sample_snapshot)
    assert artifacts.assistant.member_ids == ()


def test_compile_is_idempotent(sample_snapshot):
    for anchor_id, level in [(100, RoleLevel.MANAGER), (20, RoleLevel.DIRECTOR), (1, RoleLevel.SVP)]:
        scope = _scope(sample_snapshot, anchor_id, level)
        for target in FilterTarget:
            assert COMPILER.compile(scope, target).to_json() == COMPILER.compile(scope, target).to_json()


def test_compile_dispatches_by_target(sample_snapshot):
    scope = _scope(sample_snapshot, 20, RoleLevel.DIRECTOR)
    assert isinstance(COMPILER.compile(scope, FilterTarget.POWER_BI), PowerBIFilter)
    assert isinstance(COMPILER.compile(scope, "catalog"), CatalogPredicate)
    assert isinstance(COMPILER.compile(scope, FilterTarget.ASSISTANT), AssistantContext)


def _raw_scope(**overrides):
    values = dict(
        anchor_id=1,
        effective_level=RoleLevel.MANAGER,
        member_ids=frozenset({1, 2}),
        regions=frozenset({"NA"}),
        snapshot_version=1,
        region_closed=False,
    )
    values.update(overrides)
    return DataScope(**values)


@pytest.mark.parametrize("bad_id", [True, -1, "7", 3.0])
def test_ill_typed_member_ids_never_reach_a_predicate(bad_id):
    scope = _raw_scope(member_ids=frozenset({bad_id}))
    with pytest.raises(PredicateValidationError):
        COMPILER.compile(scope, FilterTarget.CATALOG)


def test_unknown_region_never_reaches_a_predicate():
    scope = _raw_scope(effective_level=RoleLevel.DIRECTOR, regions=frozenset({"NA' OR 1=1 --"}), region_closed=True)
    with pytest.raises(PredicateValidationError):
        COMPILER.compile(scope, FilterTarget.CATALOG)


def test_invalid_column_identifier_is_rejected():
    schema = FilterSchema(
        power_bi_table=SCHEMA.power_bi_table,
        power_bi_columns=SCHEMA.power_bi_columns,
        catalog_columns=((Dimension.EMPLOYEE_ID, "employee_id; DROP TABLE employees"),),
        region_codes=SCHEMA.region_codes,
    )
    with pytest.raises(PredicateValidationError):
        FilterCompiler(schema).compile(_raw_scope(), FilterTarget.CATALOG)


# ---- Cross-system equivalence ---------------------------------------------------------


@settings(max_examples=75, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(records=forests(), level=st.sampled_from(list(RoleLevel)), data=st.data())
def test_all_artifacts_select_exactly_the_scope(records, level, data):
    snapshot = build_snapshot(records, version=1, region_codes=REGIONS)
    anchors = [r for r in records if r.is_active and r.region is not None]
    assume(anchors)
    anchor = data.draw(st.sampled_from(anchors))

    scope = HierarchyResolver(snapshot).compute_scope(anchor, level)
    artifacts = COMPILER.compile_all(scope)

    for e in snapshot:
        expected = e.id in scope.member_ids
        assert artifacts.power_bi.admits(e) is expected
        assert artifacts.catalog.admits(e) is expected
        assert artifacts.assistant.admits(e) is expected


def _load(db, records):
    db.add_all(
        Employee(
            employee_id=r.id,
            manager_id=r.manager_id,
            email=r.email,
            role_level=r.role_level.value,
            region=r.region,
            status=r.status.value,
        )
        for r in records
    )
    db.flush()


def test_catalog_predicate_as_sql_selects_the_scope(db_session, sample_records, sample_snapshot):
    _load(db_session, sample_records)
    resolver = HierarchyResolver(sample_snapshot)

    for anchor in sample_snapshot.active():
        for level in RoleLevel:
            scope = resolver.compute_scope(anchor, level)
            predicate = COMPILER.compile(scope, FilterTarget.CATALOG)

            rows = db_session.execute(
                text(f"SELECT employee_id FROM employees WHERE {predicate.clause}"),
                predicate.bind_params,
            )
            assert {row[0] for row in rows} == scope.member_ids, (anchor.id, level)

            orm_ids = db_session.scalars(select(Employee.employee_id).where(predicate.criteria_for(Employee)))
            assert set(orm_ids) == scope.member_ids
