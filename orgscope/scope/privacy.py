"""
Cohort privacy guard.

Every number that leaves the service as a group metric goes through
`CohortPrivacyGuard.evaluate()` first, whatever surface is about to show it.
The decision depends only on cohort sizes, so one surface can never reveal
a small-cohort value that another surface withholds. An overall figure is
judged with the region breakdown it belongs to (`evaluate_breakdown()`).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Sequence, Union

logger = logging.getLogger(__name__)

MIN_COHORT_SIZE = 6


def suppression_reason(minimum: int) -> str:
    return f"insufficient data — privacy protection, minimum {minimum} required"


class Surface(str, Enum):
    DASHBOARD_TILE = "dashboard_tile"
    REPORT_EMBED = "report_embed"
    ASSISTANT_ANSWER = "assistant_answer"
    API_RESPONSE = "api_response"


@dataclass(frozen=True)
class CohortAggregate:
    """A group-level metric and the size of the group behind it."""

    metric: str
    label: str
    value: float
    member_count: int


@dataclass(frozen=True)
class Displayable:
    aggregate: CohortAggregate

    @property
    def displayable(self) -> bool:
        return True


@dataclass(frozen=True)
class Suppressed:
    """Withheld aggregate. Carries neither the value nor the cohort size."""

    metric: str
    label: str
    reason: str

    @property
    def displayable(self) -> bool:
        return False


GuardResult = Union[Displayable, Suppressed]


class CohortPrivacyGuard:
    def __init__(self, min_cohort_size: int = MIN_COHORT_SIZE) -> None:
        # Configuration may raise the floor, never lower it.
        self._minimum = max(int(min_cohort_size), MIN_COHORT_SIZE)
        self._reason = suppression_reason(self._minimum)

    @property
    def minimum(self) -> int:
        return self._minimum

    def evaluate(self, aggregate: CohortAggregate, surface: Surface = Surface.API_RESPONSE) -> GuardResult:
        if aggregate.member_count < self._minimum:
            logger.debug(
                "Suppressed metric=%s label=%s surface=%s (cohort below %s)",
                aggregate.metric,
                aggregate.label,
                Surface(surface).value,
                self._minimum,
            )
            return Suppressed(metric=aggregate.metric, label=aggregate.label, reason=self._reason)
        return Displayable(aggregate)

    def evaluate_all(self, aggregates: list[CohortAggregate], surface: Surface) -> list[GuardResult]:
        return [self.evaluate(a, surface) for a in aggregates]

    def evaluate_breakdown(
        self,
        overall: CohortAggregate,
        parts: Sequence[CohortAggregate],
        surface: Surface,
    ) -> tuple[GuardResult, list[GuardResult]]:
        """
        Evaluate an aggregate together with the parts that partition it.

        The overall value is withheld whenever a non-empty part is, otherwise
        it could be combined with the displayed parts to recover the
        withheld one.
        """

        results = self.evaluate_all(list(parts), surface)
        withheld = [p.label for p, r in zip(parts, results) if p.member_count and not r.displayable]
        if withheld and overall.member_count:
            logger.debug(
                "Suppressed metric=%s label=%s surface=%s (parts %s withheld)",
                overall.metric,
                overall.label,
                Surface(surface).value,
                ",".join(withheld),
            )
            return Suppressed(metric=overall.metric, label=overall.label, reason=self._reason), results
        return self.evaluate(overall, surface), results
