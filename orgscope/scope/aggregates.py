"""
Compliance aggregates over the catalog.

Queries here carry no scope of their own: they run on a session whose
`catalog_predicate` the row filter hook applies. The results are raw
`CohortAggregate`s and must pass `CohortPrivacyGuard` before display.

Every surface reads the same `ComplianceBreakdown` of a scope: the overall
aggregate plus one aggregate per region, which together partition it. The
guard decides on the breakdown as a whole, so a region can only be shown or
asked about in a way that is consistent with the overall figure.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from orgscope.models.directory import ComplianceRecord, Employee
from orgscope.scope.privacy import CohortAggregate

logger = logging.getLogger(__name__)

COMPLIANCE_METRIC = "office_compliance"
OVERALL_LABEL = "overall"
UNASSIGNED_LABEL = "unassigned"


@dataclass(frozen=True)
class ComplianceBreakdown:
    overall: CohortAggregate
    # One per non-empty region group, sorted by label; employees without a
    # region form the "unassigned" group.
    regions: tuple[CohortAggregate, ...]

    def region(self, code: str) -> CohortAggregate:
        for aggregate in self.regions:
            if aggregate.label == code:
                return aggregate
        return _aggregate(code, [])


def latest_period(db: Session) -> date | None:
    periods = db.scalars(select(ComplianceRecord.period).order_by(ComplianceRecord.period.desc()).limit(1)).all()
    return periods[0] if periods else None


def _rates(db: Session, period: date) -> list[tuple[str | None, float]]:
    stmt = (
        select(Employee.region, ComplianceRecord.compliance_rate)
        .join(ComplianceRecord, ComplianceRecord.employee_id == Employee.employee_id)
        .where(ComplianceRecord.period == period)
        .order_by(Employee.employee_id)
    )
    return [(region, rate) for region, rate in db.execute(stmt).all()]


def _aggregate(label: str, rates: list[float]) -> CohortAggregate:
    value = round(sum(rates) / len(rates), 1) if rates else 0.0
    return CohortAggregate(metric=COMPLIANCE_METRIC, label=label, value=value, member_count=len(rates))


def compliance_breakdown(db: Session, *, period: date | None = None) -> ComplianceBreakdown:
    """
    Mean compliance rate of the visible employees for `period` (default: the
    latest period visible), overall and per region.
    """

    period = period or latest_period(db)
    if period is None:
        return ComplianceBreakdown(overall=_aggregate(OVERALL_LABEL, []), regions=())

    rows = _rates(db, period)
    grouped: dict[str, list[float]] = defaultdict(list)
    for region, rate in rows:
        grouped[region or UNASSIGNED_LABEL].append(rate)

    breakdown = ComplianceBreakdown(
        overall=_aggregate(OVERALL_LABEL, [rate for _, rate in rows]),
        regions=tuple(_aggregate(label, grouped[label]) for label in sorted(grouped)),
    )
    logger.debug("Computed compliance breakdown period=%s regions=%s", period.isoformat(), len(breakdown.regions))
    return breakdown
