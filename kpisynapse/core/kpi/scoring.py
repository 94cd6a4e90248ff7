# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scoring engine converting canonical metrics into a weighted KPI score.

Each metric has a fixed weight and a monotonic step table mapping its
percentage to a sub-score in [0, weight]:

    metric              weight  direction
    turnaround_time         20  higher is better
    major_negativity        20  lower is better
    quality_concern         20  lower is better
    neighbor_check          10  higher is better
    general_negativity      10  lower is better
    app_usage               10  higher is better
    insufficiency           10  lower is better

Steps are evaluated top-down and the first matching step wins; a value
matching no step gets the table's fallback score. The overall score is
the sum of sub-scores rounded to 2 decimals, clamped to [0, 100], then
rounded half-up to an integer.

Example:
    engine = ScoringEngine()
    result = engine.score(RawMetrics(turnaround_time=96, app_usage=85))
    result.overall, result.rating
"""

import logging
import operator
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Callable

from kpisynapse.core.kpi.types import (
    MetricName,
    MetricScore,
    RawMetrics,
    ScoreResult,
    rating_for,
)

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    """Whether larger percentages earn more or less credit."""

    HIGHER_IS_BETTER = "higher_is_better"
    LOWER_IS_BETTER = "lower_is_better"


@dataclass(frozen=True)
class Step:
    """One row of a step table: `percentage <op> threshold -> score`."""

    compare: Callable[[float, float], bool]
    threshold: float
    score: int

    def matches(self, percentage: float) -> bool:
        return self.compare(percentage, self.threshold)


@dataclass(frozen=True)
class MetricTable:
    """Step table and weight for one metric."""

    metric: MetricName
    weight: int
    direction: Direction
    steps: tuple[Step, ...]
    fallback: int

    def score(self, percentage: float) -> int:
        """Score a percentage against this table."""
        for step in self.steps:
            if step.matches(percentage):
                return step.score
        return self.fallback


ge, le, lt, eq = operator.ge, operator.le, operator.lt, operator.eq

SCORING_TABLES: tuple[MetricTable, ...] = (
    MetricTable(
        MetricName.TURNAROUND_TIME,
        weight=20,
        direction=Direction.HIGHER_IS_BETTER,
        steps=(Step(ge, 95, 20), Step(ge, 90, 10), Step(ge, 85, 5)),
        fallback=0,
    ),
    MetricTable(
        MetricName.MAJOR_NEGATIVITY,
        weight=20,
        direction=Direction.LOWER_IS_BETTER,
        steps=(Step(ge, 2.5, 0), Step(ge, 2, 5), Step(ge, 1.5, 15)),
        fallback=20,
    ),
    MetricTable(
        MetricName.QUALITY_CONCERN,
        weight=20,
        direction=Direction.LOWER_IS_BETTER,
        steps=(Step(eq, 0, 20), Step(le, 0.25, 15), Step(le, 0.5, 10)),
        fallback=0,
    ),
    MetricTable(
        MetricName.NEIGHBOR_CHECK,
        weight=10,
        direction=Direction.HIGHER_IS_BETTER,
        steps=(Step(ge, 90, 10), Step(ge, 85, 5), Step(ge, 80, 2)),
        fallback=0,
    ),
    MetricTable(
        MetricName.GENERAL_NEGATIVITY,
        weight=10,
        direction=Direction.LOWER_IS_BETTER,
        steps=(Step(ge, 25, 0), Step(ge, 20, 2), Step(ge, 15, 5)),
        fallback=10,
    ),
    MetricTable(
        MetricName.APP_USAGE,
        weight=10,
        direction=Direction.HIGHER_IS_BETTER,
        steps=(Step(ge, 85, 10), Step(ge, 80, 5)),
        fallback=0,
    ),
    MetricTable(
        MetricName.INSUFFICIENCY,
        weight=10,
        direction=Direction.LOWER_IS_BETTER,
        steps=(Step(lt, 1, 10), Step(le, 1.5, 5), Step(le, 2, 2)),
        fallback=0,
    ),
)


def round_overall(total: float) -> int:
    """Round a raw sub-score sum to the integer overall score."""
    two_places = Decimal(str(total)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    clamped = min(max(two_places, Decimal(0)), Decimal(100))
    return int(clamped.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class ScoringEngine:
    """Deterministic KPI scoring over a fixed set of step tables."""

    def __init__(self, tables: tuple[MetricTable, ...] = SCORING_TABLES) -> None:
        total_weight = sum(table.weight for table in tables)
        if total_weight != 100:
            raise ValueError(f"Metric weights must sum to 100, got {total_weight}")
        self._tables = tables

    @property
    def tables(self) -> tuple[MetricTable, ...]:
        return self._tables

    def score(self, metrics: RawMetrics) -> ScoreResult:
        """Score a set of canonical metrics.

        Args:
            metrics: Canonical metric percentages.

        Returns:
            Per-metric scores, overall score and rating.
        """
        per_metric = tuple(
            MetricScore(
                metric=table.metric,
                percentage=metrics.get(table.metric),
                score=table.score(metrics.get(table.metric)),
                weight=table.weight,
            )
            for table in self._tables
        )
        overall = round_overall(sum(entry.score for entry in per_metric))
        rating = rating_for(overall)

        logger.debug("Scored metrics: overall=%d rating=%s", overall, rating.value)
        return ScoreResult(per_metric=per_metric, overall=overall, rating=rating)
