# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""KPI scoring and trigger rules.

This package holds the pure, storage-free parts of the KPI pipeline:
- types: Canonical metrics, rating tiers and action enums
- scoring: Weighted step-table scoring
- rules: Score-tier and condition rules producing directives
- period: Calendar-month periods

Usage:
    from kpisynapse.core.kpi import RawMetrics, ScoringEngine, TriggerRuleEngine

    metrics = RawMetrics(turnaround_time=96)
    scores = ScoringEngine().score(metrics)
    directives = TriggerRuleEngine().evaluate(scores.overall, scores, metrics)
"""

from kpisynapse.core.kpi.exceptions import (
    ConcurrentRunRejectedError,
    DependencyUnavailableError,
    KPIError,
    NotFoundError,
    ValidationError,
)
from kpisynapse.core.kpi.period import (
    current_period,
    normalize_period_label,
    period_bounds,
    previous_period,
    validate_period,
)
from kpisynapse.core.kpi.rules import (
    CONDITION_RULES,
    SCORE_TIER_RULES,
    AuditDirective,
    RewardDirective,
    TrainingDirective,
    TriggerDirective,
    TriggerRuleEngine,
    WarningDirective,
    improvement_areas,
)
from kpisynapse.core.kpi.scoring import SCORING_TABLES, Direction, ScoringEngine
from kpisynapse.core.kpi.types import (
    ALL_ROLES,
    RATING_TIERS,
    AuditType,
    AutomationStatus,
    DirectiveKind,
    MetricName,
    MetricScore,
    Priority,
    RawMetrics,
    Rating,
    RecipientRole,
    ScoreResult,
    TrainingType,
    coerce_percentage,
    rating_for,
)

__all__ = [
    # Exceptions
    "KPIError",
    "NotFoundError",
    "ValidationError",
    "DependencyUnavailableError",
    "ConcurrentRunRejectedError",
    # Periods
    "current_period",
    "normalize_period_label",
    "period_bounds",
    "previous_period",
    "validate_period",
    # Types
    "ALL_ROLES",
    "RATING_TIERS",
    "AuditType",
    "AutomationStatus",
    "DirectiveKind",
    "MetricName",
    "MetricScore",
    "Priority",
    "RawMetrics",
    "Rating",
    "RecipientRole",
    "ScoreResult",
    "TrainingType",
    "coerce_percentage",
    "rating_for",
    # Scoring
    "SCORING_TABLES",
    "Direction",
    "ScoringEngine",
    # Rules
    "CONDITION_RULES",
    "SCORE_TIER_RULES",
    "AuditDirective",
    "RewardDirective",
    "TrainingDirective",
    "TriggerDirective",
    "TriggerRuleEngine",
    "WarningDirective",
    "improvement_areas",
]
