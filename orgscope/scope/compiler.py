"""
Filter compiler: one `DataScope`, three filter languages.

Every artifact is built from the same list of conditions, chosen once per
scope by `_conditions()`:

- Manager scopes, and any scope that is not region-closed, enumerate ids:
      employee_id IN member_ids
- Region-closed Director/SVP scopes use the coarser region form:
      region IN regions AND status IN ("Active")

`compile()` is pure and deterministic: values are sorted and serializations
use sorted keys, so the same (scope, target) always yields identical bytes.
Each artifact can evaluate `admits(employee)` on its own representation,
which is what the cross-system equivalence tests exercise.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import json
import logging
import re
from typing import Any, Callable, Union

from sqlalchemy import TextClause, and_, false, text
from sqlalchemy.sql.elements import ColumnElement

from orgscope.directory.records import EmployeeRecord, EmployeeStatus, RoleLevel
from orgscope.errors import PredicateValidationError
from orgscope.scope.types import DataScope
from orgscope.security.config import ScopeConfig

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_BASIC_FILTER_SCHEMA = "http://powerbi.com/product/schema#basic"


class FilterTarget(str, Enum):
    POWER_BI = "powerbi"
    CATALOG = "catalog"
    ASSISTANT = "assistant"


class Dimension(str, Enum):
    EMPLOYEE_ID = "employee_id"
    REGION = "region"
    STATUS = "status"

    def value_of(self, employee: EmployeeRecord) -> Any:
        if self is Dimension.EMPLOYEE_ID:
            return employee.id
        if self is Dimension.REGION:
            return employee.region
        return EmployeeStatus(employee.status).value


_PARAM_PREFIX = {Dimension.EMPLOYEE_ID: "member", Dimension.REGION: "region", Dimension.STATUS: "status"}

# Report filters drop an `In` condition with no values instead of matching
# nothing, so an empty set is sent as one value no employee can have.
_NO_MATCH = {Dimension.EMPLOYEE_ID: -1, Dimension.REGION: "", Dimension.STATUS: ""}


@dataclass(frozen=True)
class FilterSchema:
    """Target-side names for each dimension, plus the valid region codes."""

    power_bi_table: str
    power_bi_columns: tuple[tuple[Dimension, str], ...]
    catalog_columns: tuple[tuple[Dimension, str], ...]
    region_codes: frozenset[str]

    @classmethod
    def from_config(cls, config: ScopeConfig) -> FilterSchema:
        pbi = config.power_bi.columns
        cat = config.catalog.columns
        return cls(
            power_bi_table=config.power_bi.table,
            power_bi_columns=(
                (Dimension.EMPLOYEE_ID, pbi.employee_id),
                (Dimension.REGION, pbi.region),
                (Dimension.STATUS, pbi.status),
            ),
            catalog_columns=(
                (Dimension.EMPLOYEE_ID, cat.employee_id),
                (Dimension.REGION, cat.region),
                (Dimension.STATUS, cat.status),
            ),
            region_codes=config.region_codes,
        )

    def power_bi_column(self, dimension: Dimension) -> str:
        return dict(self.power_bi_columns)[dimension]

    def catalog_column(self, dimension: Dimension) -> str:
        return dict(self.catalog_columns)[dimension]


# ---- Artifacts ------------------------------------------------------------------------


@dataclass(frozen=True)
class BasicFilter:
    """Power BI basic filter: `target.column In values`."""

    table: str
    column: str
    dimension: Dimension
    values: tuple[Any, ...]

    def admits(self, employee: EmployeeRecord) -> bool:
        return self.dimension.value_of(employee) in self.values

    def to_dict(self) -> dict[str, Any]:
        return {
            "$schema": _BASIC_FILTER_SCHEMA,
            "target": {"table": self.table, "column": self.column},
            "operator": "In",
            "values": list(self.values),
            "filterType": 1,
            "requireSingleSelection": False,
        }


@dataclass(frozen=True)
class PowerBIFilter:
    """Report-level filters; the embed SDK ANDs them."""

    filters: tuple[BasicFilter, ...]

    def admits(self, employee: EmployeeRecord) -> bool:
        return all(f.admits(employee) for f in self.filters)

    def to_payload(self) -> list[dict[str, Any]]:
        return [f.to_dict() for f in self.filters]

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), sort_keys=True, separators=(",", ":"))


@dataclass(frozen=True)
class CatalogCondition:
    column: str
    dimension: Dimension
    values: tuple[Any, ...]


@dataclass(frozen=True)
class CatalogPredicate:
    """
    Parameterized row filter. `clause` only ever contains validated column
    identifiers and `:name` placeholders; values travel in `params`.
    """

    clause: str
    params: tuple[tuple[str, Any], ...]
    conditions: tuple[CatalogCondition, ...]

    @property
    def bind_params(self) -> dict[str, Any]:
        return dict(self.params)

    def admits(self, employee: EmployeeRecord) -> bool:
        return all(c.dimension.value_of(employee) in c.values for c in self.conditions)

    def as_text(self) -> TextClause:
        return text(self.clause).bindparams(**self.bind_params)

    def criteria_for(self, entity: type) -> ColumnElement[bool]:
        """The same condition as column expressions on a mapped class."""
        clauses = []
        for condition in self.conditions:
            if not condition.values:
                return false()
            clauses.append(getattr(entity, condition.column).in_(condition.values))
        return and_(*clauses) if clauses else false()

    def to_dict(self) -> dict[str, Any]:
        return {"clause": self.clause, "params": self.bind_params}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))


@dataclass(frozen=True)
class AssistantContext:
    """
    Data-access boundary handed to the conversational assistant at session
    start. Recognized fields only; the assistant never takes scope from chat
    text.
    """

    scope_level: RoleLevel
    regions: tuple[str, ...]
    member_ids: tuple[int, ...] | None
    statuses: tuple[str, ...]

    def admits(self, employee: EmployeeRecord) -> bool:
        if EmployeeStatus(employee.status).value not in self.statuses:
            return False
        if self.member_ids is not None:
            return employee.id in self.member_ids
        return employee.region in self.regions

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "scopeLevel": self.scope_level.value,
            "regions": list(self.regions),
            "statuses": list(self.statuses),
        }
        if self.member_ids is not None:
            payload["memberIds"] = list(self.member_ids)
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))


FilterArtifact = Union[PowerBIFilter, CatalogPredicate, AssistantContext]


@dataclass(frozen=True)
class CompiledArtifacts:
    power_bi: PowerBIFilter
    catalog: CatalogPredicate
    assistant: AssistantContext


# ---- Compilation -----------------------------------------------------------------------


Condition = tuple[Dimension, tuple[Any, ...]]


def _conditions(scope: DataScope) -> tuple[Condition, ...]:
    if scope.effective_level is RoleLevel.MANAGER or not scope.region_closed:
        return ((Dimension.EMPLOYEE_ID, tuple(sorted(scope.member_ids))),)
    return (
        (Dimension.REGION, tuple(sorted(scope.regions))),
        (Dimension.STATUS, (EmployeeStatus.ACTIVE.value,)),
    )


def _validate_identifier(name: str) -> str:
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise PredicateValidationError(f"invalid column identifier {name!r}")
    return name


def _validate_values(dimension: Dimension, values: tuple[Any, ...], schema: FilterSchema) -> tuple[Any, ...]:
    for value in values:
        if dimension is Dimension.EMPLOYEE_ID:
            # bool is an int subclass; True must never pass as employee 1.
            if type(value) is not int or value < 0:
                raise PredicateValidationError(f"employee id must be a non-negative integer, got {value!r}")
        elif dimension is Dimension.REGION:
            if value not in schema.region_codes:
                raise PredicateValidationError(f"unknown region code {value!r}")
        elif value not in {s.value for s in EmployeeStatus}:
            raise PredicateValidationError(f"unknown status {value!r}")
    return values


def _compile_power_bi(scope: DataScope, schema: FilterSchema) -> PowerBIFilter:
    filters = []
    for dimension, values in _conditions(scope):
        filters.append(
            BasicFilter(
                table=schema.power_bi_table,
                column=schema.power_bi_column(dimension),
                dimension=dimension,
                values=_validate_values(dimension, values, schema) or (_NO_MATCH[dimension],),
            )
        )
    return PowerBIFilter(filters=tuple(filters))


def _compile_catalog(scope: DataScope, schema: FilterSchema) -> CatalogPredicate:
    parts: list[str] = []
    params: list[tuple[str, Any]] = []
    conditions: list[CatalogCondition] = []

    for dimension, values in _conditions(scope):
        column = _validate_identifier(schema.catalog_column(dimension))
        values = _validate_values(dimension, values, schema)
        conditions.append(CatalogCondition(column=column, dimension=dimension, values=values))
        if not values:
            parts = ["1 = 0"]
            params = []
            break
        names = [f"{_PARAM_PREFIX[dimension]}_{i}" for i in range(len(values))]
        parts.append(f"{column} IN ({', '.join(':' + n for n in names)})")
        params.extend(zip(names, values))

    return CatalogPredicate(
        clause=" AND ".join(parts) if parts else "1 = 0",
        params=tuple(params),
        conditions=tuple(conditions),
    )


def _compile_assistant(scope: DataScope, schema: FilterSchema) -> AssistantContext:
    regions = _validate_values(Dimension.REGION, tuple(sorted(scope.regions)), schema)
    enumerated = scope.effective_level is RoleLevel.MANAGER or not scope.region_closed
    member_ids = None
    if enumerated:
        member_ids = _validate_values(Dimension.EMPLOYEE_ID, tuple(sorted(scope.member_ids)), schema)
    return AssistantContext(
        scope_level=scope.effective_level,
        regions=regions,
        member_ids=member_ids,
        statuses=(EmployeeStatus.ACTIVE.value,),
    )


_COMPILERS: dict[FilterTarget, Callable[[DataScope, FilterSchema], FilterArtifact]] = {
    FilterTarget.POWER_BI: _compile_power_bi,
    FilterTarget.CATALOG: _compile_catalog,
    FilterTarget.ASSISTANT: _compile_assistant,
}


class FilterCompiler:
    def __init__(self, schema: FilterSchema) -> None:
        self._schema = schema

    @property
    def schema(self) -> FilterSchema:
        return self._schema

    def compile(self, scope: DataScope, target: FilterTarget) -> FilterArtifact:
        artifact = _COMPILERS[FilterTarget(target)](scope, self._schema)
        logger.debug(
            "Compiled %s artifact anchor=%s level=%s snapshot=%s",
            FilterTarget(target).value,
            scope.anchor_id,
            scope.effective_level.value,
            scope.snapshot_version,
        )
        return artifact

    def compile_all(self, scope: DataScope) -> CompiledArtifacts:
        return CompiledArtifacts(
            power_bi=self.compile(scope, FilterTarget.POWER_BI),  # type: ignore[arg-type]
            catalog=self.compile(scope, FilterTarget.CATALOG),  # type: ignore[arg-type]
            assistant=self.compile(scope, FilterTarget.ASSISTANT),  # type: ignore[arg-type]
        )
