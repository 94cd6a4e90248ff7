# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Shared KPI types: canonical metrics, rating tiers and action enums.

The rating table lives here so the scoring engine and the trigger rule
engine read the same tier boundaries.
"""

import math
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any


class MetricName(str, Enum):
    """Canonical KPI metrics, in scoring order."""

    TURNAROUND_TIME = "turnaround_time"
    MAJOR_NEGATIVITY = "major_negativity"
    QUALITY_CONCERN = "quality_concern"
    NEIGHBOR_CHECK = "neighbor_check"
    GENERAL_NEGATIVITY = "general_negativity"
    APP_USAGE = "app_usage"
    INSUFFICIENCY = "insufficiency"


class Rating(str, Enum):
    """Performance rating tiers, best first."""

    OUTSTANDING = "Outstanding"
    EXCELLENT = "Excellent"
    SATISFACTORY = "Satisfactory"
    NEED_IMPROVEMENT = "Need Improvement"
    UNSATISFACTORY = "Unsatisfactory"


# (min_score_inclusive, rating), evaluated top-down
RATING_TIERS: tuple[tuple[float, Rating], ...] = (
    (85, Rating.OUTSTANDING),
    (70, Rating.EXCELLENT),
    (50, Rating.SATISFACTORY),
    (40, Rating.NEED_IMPROVEMENT),
    (0, Rating.UNSATISFACTORY),
)


def rating_for(score: float) -> Rating:
    """Map a score to its rating tier.

    Args:
        score: Overall score (any real number, not only integers).

    Returns:
        The first tier whose minimum the score reaches.
    """
    for minimum, rating in RATING_TIERS:
        if score >= minimum:
            return rating
    return Rating.UNSATISFACTORY


class AutomationStatus(str, Enum):
    """Processing state of a KPI record's triggers."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DirectiveKind(str, Enum):
    """Kinds of trigger directives."""

    TRAINING = "training"
    AUDIT = "audit"
    WARNING = "warning"
    REWARD = "reward"


class RecipientRole(str, Enum):
    """Audience roles a directive can address."""

    SUBJECT = "subject"
    COORDINATOR = "coordinator"
    MANAGER = "manager"
    COMPLIANCE = "compliance"
    DEPARTMENT_HEAD = "department_head"


ALL_ROLES: frozenset[RecipientRole] = frozenset(RecipientRole)


class TrainingType(str, Enum):
    """Training programs a directive can assign."""

    BASIC = "basic"
    NEGATIVITY_HANDLING = "negativity_handling"
    DOS_DONTS = "dos_donts"
    APP_USAGE = "app_usage"


class AuditType(str, Enum):
    """Audit procedures a directive can schedule."""

    AUDIT_CALL = "audit_call"
    CROSS_CHECK = "cross_check"
    DUMMY_AUDIT = "dummy_audit"
    ROOT_CAUSE_REVIEW = "root_cause_review"
    CROSS_VERIFY_INSUFF = "cross_verify_insuff"


class Priority(str, Enum):
    """Priority of a training assignment or audit schedule."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def coerce_percentage(value: Any) -> float:
    """Normalize a raw metric value to a percentage in [0, 100].

    Missing, non-numeric and non-finite values become 0. Strings may
    carry a trailing percent sign or thousands separators.

    Args:
        value: Raw input value.

    Returns:
        Clamped percentage.
    """
    if value is None or isinstance(value, bool):
        return 0.0

    if isinstance(value, str):
        cleaned = value.strip().rstrip("%").replace(",", "").strip()
        if not cleaned:
            return 0.0
        try:
            number = float(cleaned)
        except ValueError:
            return 0.0
    else:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.0

    if not math.isfinite(number):
        return 0.0
    return min(max(number, 0.0), 100.0)


@dataclass(frozen=True)
class RawMetrics:
    """The seven canonical metrics for one user and period.

    All values are percentages in [0, 100]. Use from_mapping() to build
    an instance from untrusted input.

    Attributes:
        turnaround_time: Turnaround-time compliance.
        major_negativity: Major-negativity rate.
        quality_concern: Quality-concern rate.
        neighbor_check: Neighbor-check completion rate.
        general_negativity: General-negativity rate.
        app_usage: Application-usage rate.
        insufficiency: Insufficiency rate.
        total_cases: Case count reported by bulk import, if any.
    """

    turnaround_time: float = 0.0
    major_negativity: float = 0.0
    quality_concern: float = 0.0
    neighbor_check: float = 0.0
    general_negativity: float = 0.0
    app_usage: float = 0.0
    insufficiency: float = 0.0
    total_cases: int | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        for metric in MetricName:
            object.__setattr__(
                self, metric.value, coerce_percentage(getattr(self, metric.value))
            )

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "RawMetrics":
        """Build metrics from a dict keyed by MetricName values.

        Unknown keys are ignored and missing metrics default to 0.
        """
        values = {metric.value: data.get(metric.value) for metric in MetricName}
        total_cases = data.get("total_cases")
        try:
            cases = int(float(total_cases)) if total_cases not in (None, "") else None
        except (TypeError, ValueError):
            cases = None
        return cls(**values, total_cases=cases)

    def get(self, metric: MetricName) -> float:
        """Get the percentage for one metric."""
        return getattr(self, metric.value)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        data: dict[str, Any] = {f.name: getattr(self, f.name) for f in fields(self)}
        if data["total_cases"] is None:
            del data["total_cases"]
        return data


@dataclass(frozen=True)
class MetricScore:
    """Scored value of a single metric."""

    metric: MetricName
    percentage: float
    score: int
    weight: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "percentage": self.percentage,
            "score": self.score,
            "weight": self.weight,
        }


@dataclass(frozen=True)
class ScoreResult:
    """Output of the scoring engine.

    Attributes:
        per_metric: Scores in MetricName order.
        overall: Integer overall score in [0, 100].
        rating: Rating tier for the overall score.
    """

    per_metric: tuple[MetricScore, ...]
    overall: int
    rating: Rating

    def get(self, metric: MetricName) -> MetricScore:
        """Get the scored entry for one metric.

        Raises:
            KeyError: If the metric was not scored.
        """
        for entry in self.per_metric:
            if entry.metric == metric:
                return entry
        raise KeyError(metric.value)

    def to_dict(self) -> dict[str, Any]:
        return {entry.metric.value: entry.to_dict() for entry in self.per_metric}
