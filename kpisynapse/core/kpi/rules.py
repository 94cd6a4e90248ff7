# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Trigger rule engine.

Given a scored KPI evaluation, produces the ordered list of directives
(training, audit, warning, reward) that the action orchestrator executes.

Two rule families are evaluated and concatenated:

1. Score-tier rules: exactly one fires, chosen top-down by
   ``min_score_inclusive`` from the shared rating table.
2. Condition rules: each is evaluated independently against the raw
   metrics, in a fixed order, and any subset may fire.

Directives are not deduplicated by kind. A tier rule and a condition
rule that both request basic training yield two training directives,
each with its own justification.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar

from kpisynapse.core.kpi.types import (
    ALL_ROLES,
    RATING_TIERS,
    AuditType,
    DirectiveKind,
    MetricName,
    Priority,
    RawMetrics,
    Rating,
    RecipientRole,
    ScoreResult,
    TrainingType,
)

logger = logging.getLogger(__name__)


def _fmt(value: float) -> str:
    return f"{value:g}"


def _sorted_roles(roles: frozenset[RecipientRole]) -> list[str]:
    order = list(RecipientRole)
    return [role.value for role in sorted(roles, key=order.index)]


# =============================================================================
# DIRECTIVES
# =============================================================================


@dataclass(frozen=True)
class TrainingDirective:
    """Assign a training program to the subject user."""

    kind: ClassVar[DirectiveKind] = DirectiveKind.TRAINING

    training_type: TrainingType
    priority: Priority
    justification: str
    recipients: frozenset[RecipientRole]
    rule: str

    @property
    def action(self) -> str:
        return f"{self.training_type.value}_training"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "action": self.action,
            "rule": self.rule,
            "training_type": self.training_type.value,
            "priority": self.priority.value,
            "justification": self.justification,
            "recipients": _sorted_roles(self.recipients),
        }


@dataclass(frozen=True)
class AuditDirective:
    """Schedule an audit of the subject user's work."""

    kind: ClassVar[DirectiveKind] = DirectiveKind.AUDIT

    audit_type: AuditType
    priority: Priority
    justification: str
    recipients: frozenset[RecipientRole]
    rule: str

    @property
    def action(self) -> str:
        return self.audit_type.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "action": self.action,
            "rule": self.rule,
            "audit_type": self.audit_type.value,
            "priority": self.priority.value,
            "justification": self.justification,
            "recipients": _sorted_roles(self.recipients),
        }


@dataclass(frozen=True)
class WarningDirective:
    """Issue a formal performance warning."""

    kind: ClassVar[DirectiveKind] = DirectiveKind.WARNING

    justification: str
    recipients: frozenset[RecipientRole]
    rule: str
    improvement_areas: tuple[str, ...] = ()

    @property
    def action(self) -> str:
        return "warning_letter"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "action": self.action,
            "rule": self.rule,
            "justification": self.justification,
            "recipients": _sorted_roles(self.recipients),
            "improvement_areas": list(self.improvement_areas),
        }


@dataclass(frozen=True)
class RewardDirective:
    """Recognize outstanding performance."""

    kind: ClassVar[DirectiveKind] = DirectiveKind.REWARD

    justification: str
    recipients: frozenset[RecipientRole]
    rule: str

    @property
    def action(self) -> str:
        return "reward"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "action": self.action,
            "rule": self.rule,
            "justification": self.justification,
            "recipients": _sorted_roles(self.recipients),
        }


TriggerDirective = TrainingDirective | AuditDirective | WarningDirective | RewardDirective


# =============================================================================
# RULE TABLES
# =============================================================================


@dataclass(frozen=True)
class EvaluationContext:
    """Inputs visible to every rule."""

    overall: int
    scores: ScoreResult
    metrics: RawMetrics

    @property
    def rating(self) -> Rating:
        return self.scores.rating


def _derived_priority(context: EvaluationContext, priority: Priority | None) -> Priority:
    """Explicit priority, or high below an overall score of 40 and medium otherwise."""
    if priority is not None:
        return priority
    return Priority.HIGH if context.overall < 40 else Priority.MEDIUM


@dataclass(frozen=True)
class TrainingTemplate:
    """Blueprint for a training directive."""

    training_type: TrainingType
    priority: Priority | None = None

    def build(
        self,
        context: EvaluationContext,
        justification: str,
        recipients: frozenset[RecipientRole],
        rule: str,
    ) -> TrainingDirective:
        return TrainingDirective(
            training_type=self.training_type,
            priority=_derived_priority(context, self.priority),
            justification=justification,
            recipients=recipients,
            rule=rule,
        )


@dataclass(frozen=True)
class AuditTemplate:
    """Blueprint for an audit directive. ``note`` is appended to the justification."""

    audit_type: AuditType
    priority: Priority | None = None
    note: str | None = None

    def build(
        self,
        context: EvaluationContext,
        justification: str,
        recipients: frozenset[RecipientRole],
        rule: str,
    ) -> AuditDirective:
        if self.note:
            justification = f"{justification} ({self.note})"
        return AuditDirective(
            audit_type=self.audit_type,
            priority=_derived_priority(context, self.priority),
            justification=justification,
            recipients=recipients,
            rule=rule,
        )


@dataclass(frozen=True)
class WarningTemplate:
    """Blueprint for a warning directive listing the weak metrics."""

    def build(
        self,
        context: EvaluationContext,
        justification: str,
        recipients: frozenset[RecipientRole],
        rule: str,
    ) -> WarningDirective:
        return WarningDirective(
            justification=justification,
            recipients=recipients,
            rule=rule,
            improvement_areas=tuple(improvement_areas(context.scores)),
        )


@dataclass(frozen=True)
class RewardTemplate:
    def build(
        self,
        context: EvaluationContext,
        justification: str,
        recipients: frozenset[RecipientRole],
        rule: str,
    ) -> RewardDirective:
        return RewardDirective(
            justification=justification,
            recipients=recipients,
            rule=rule,
        )


DirectiveTemplate = TrainingTemplate | AuditTemplate | WarningTemplate | RewardTemplate


def training(training_type: TrainingType, priority: Priority | None = None) -> TrainingTemplate:
    return TrainingTemplate(training_type, priority)


def audit(
    audit_type: AuditType,
    priority: Priority | None = None,
    note: str | None = None,
) -> AuditTemplate:
    return AuditTemplate(audit_type, priority, note)


WARNING = WarningTemplate()
REWARD = RewardTemplate()

CROSS_CHECK_NOTE = "cross-check of the last 3 months"


@dataclass(frozen=True)
class TierRule:
    """Score-tier rule: fires when the overall score reaches ``min_score``."""

    min_score: float
    rating: Rating
    templates: tuple[DirectiveTemplate, ...]
    recipients: frozenset[RecipientRole]

    @property
    def name(self) -> str:
        return f"tier_{self.rating.name.lower()}"

    def build(self, context: EvaluationContext) -> list[TriggerDirective]:
        justification = (
            f"Overall KPI score {context.overall} is in the {self.rating.value} tier"
        )
        return [
            template.build(context, justification, self.recipients, self.name)
            for template in self.templates
        ]


@dataclass(frozen=True)
class ConditionRule:
    """Independent rule evaluated against the raw metrics."""

    name: str
    predicate: Callable[[EvaluationContext], bool]
    describe: Callable[[EvaluationContext], str]
    templates: tuple[DirectiveTemplate, ...]
    recipients: frozenset[RecipientRole] = field(default=ALL_ROLES)

    def build(self, context: EvaluationContext) -> list[TriggerDirective]:
        justification = self.describe(context)
        return [
            template.build(context, justification, self.recipients, self.name)
            for template in self.templates
        ]


COMPLIANCE_AND_HEAD = frozenset({RecipientRole.COMPLIANCE, RecipientRole.DEPARTMENT_HEAD})

_TIER_ACTIONS: dict[Rating, tuple[tuple[DirectiveTemplate, ...], frozenset[RecipientRole]]] = {
    Rating.OUTSTANDING: (
        (REWARD,),
        frozenset({RecipientRole.SUBJECT, RecipientRole.MANAGER, RecipientRole.DEPARTMENT_HEAD}),
    ),
    Rating.EXCELLENT: (
        (audit(AuditType.AUDIT_CALL, Priority.LOW),),
        COMPLIANCE_AND_HEAD,
    ),
    Rating.SATISFACTORY: (
        (
            audit(AuditType.AUDIT_CALL, Priority.MEDIUM),
            audit(AuditType.CROSS_CHECK, Priority.MEDIUM, note=CROSS_CHECK_NOTE),
        ),
        COMPLIANCE_AND_HEAD,
    ),
    Rating.NEED_IMPROVEMENT: (
        (
            training(TrainingType.BASIC),
            audit(AuditType.AUDIT_CALL, Priority.HIGH),
            audit(AuditType.CROSS_CHECK, Priority.MEDIUM, note=CROSS_CHECK_NOTE),
            audit(AuditType.DUMMY_AUDIT, Priority.HIGH),
        ),
        ALL_ROLES,
    ),
    Rating.UNSATISFACTORY: (
        (
            training(TrainingType.BASIC, Priority.HIGH),
            audit(AuditType.AUDIT_CALL, Priority.HIGH),
            audit(AuditType.CROSS_CHECK, Priority.MEDIUM, note=CROSS_CHECK_NOTE),
            audit(AuditType.DUMMY_AUDIT, Priority.HIGH),
            WARNING,
        ),
        ALL_ROLES,
    ),
}

SCORE_TIER_RULES: tuple[TierRule, ...] = tuple(
    TierRule(minimum, rating, *_TIER_ACTIONS[rating]) for minimum, rating in RATING_TIERS
)


def _metric(context: EvaluationContext, metric: MetricName) -> float:
    return context.metrics.get(metric)


CONDITION_RULES: tuple[ConditionRule, ...] = (
    ConditionRule(
        name="score_below_55",
        predicate=lambda c: c.overall < 55,
        describe=lambda c: f"Overall KPI score {c.overall} is below the 55 threshold",
        templates=(training(TrainingType.BASIC), audit(AuditType.AUDIT_CALL)),
    ),
    ConditionRule(
        name="score_below_40",
        predicate=lambda c: c.overall < 40,
        describe=lambda c: f"Overall KPI score {c.overall} is below the 40 threshold",
        templates=(
            training(TrainingType.BASIC, Priority.HIGH),
            audit(AuditType.AUDIT_CALL, Priority.HIGH),
            WARNING,
        ),
    ),
    ConditionRule(
        name="major_negativity",
        predicate=lambda c: (
            _metric(c, MetricName.MAJOR_NEGATIVITY) > 0
            and _metric(c, MetricName.GENERAL_NEGATIVITY) < 25
        ),
        describe=lambda c: (
            f"Major negativity {_fmt(_metric(c, MetricName.MAJOR_NEGATIVITY))}% detected "
            f"with general negativity {_fmt(_metric(c, MetricName.GENERAL_NEGATIVITY))}% "
            "below 25%"
        ),
        templates=(
            training(TrainingType.NEGATIVITY_HANDLING, Priority.MEDIUM),
            audit(AuditType.AUDIT_CALL, Priority.MEDIUM),
        ),
    ),
    ConditionRule(
        name="quality_concern",
        predicate=lambda c: _metric(c, MetricName.QUALITY_CONCERN) > 1,
        describe=lambda c: (
            f"Quality concerns {_fmt(_metric(c, MetricName.QUALITY_CONCERN))}% "
            "above the 1% threshold"
        ),
        templates=(
            training(TrainingType.DOS_DONTS, Priority.HIGH),
            audit(AuditType.ROOT_CAUSE_REVIEW, Priority.HIGH, note="root-cause review of complaints"),
        ),
    ),
    ConditionRule(
        name="app_usage",
        predicate=lambda c: _metric(c, MetricName.APP_USAGE) < 80,
        describe=lambda c: (
            f"App usage {_fmt(_metric(c, MetricName.APP_USAGE))}% below the 80% target"
        ),
        templates=(training(TrainingType.APP_USAGE, Priority.MEDIUM),),
    ),
    ConditionRule(
        name="insufficiency",
        predicate=lambda c: _metric(c, MetricName.INSUFFICIENCY) > 2,
        describe=lambda c: (
            f"Insufficiency rate {_fmt(_metric(c, MetricName.INSUFFICIENCY))}% "
            "above the 2% threshold"
        ),
        templates=(
            audit(
                AuditType.CROSS_VERIFY_INSUFF,
                Priority.HIGH,
                note="independent cross-verification by another field executive",
            ),
        ),
        recipients=COMPLIANCE_AND_HEAD,
    ),
)


# Sub-score below which a metric is listed as an improvement area
IMPROVEMENT_THRESHOLDS: tuple[tuple[MetricName, int, str], ...] = (
    (MetricName.TURNAROUND_TIME, 10, "Turn Around Time (TAT) below target"),
    (MetricName.MAJOR_NEGATIVITY, 10, "High Major Negativity rate"),
    (MetricName.QUALITY_CONCERN, 10, "Quality concerns"),
    (MetricName.NEIGHBOR_CHECK, 5, "Insufficient neighbor checks"),
    (MetricName.GENERAL_NEGATIVITY, 5, "High general negativity rate"),
    (MetricName.APP_USAGE, 5, "Low application usage"),
    (MetricName.INSUFFICIENCY, 5, "High insufficiency rate"),
)


def improvement_areas(scores: ScoreResult) -> list[str]:
    """List the metrics whose sub-score is below its improvement threshold."""
    return [
        label
        for metric, threshold, label in IMPROVEMENT_THRESHOLDS
        if scores.get(metric).score < threshold
    ]


# =============================================================================
# ENGINE
# =============================================================================


class TriggerRuleEngine:
    """Evaluates score-tier and condition rules into trigger directives.

    Evaluation is pure and deterministic: identical inputs always yield
    an identical, order-stable directive list.
    """

    def __init__(
        self,
        tier_rules: tuple[TierRule, ...] = SCORE_TIER_RULES,
        condition_rules: tuple[ConditionRule, ...] = CONDITION_RULES,
    ) -> None:
        if not tier_rules:
            raise ValueError("At least one score-tier rule is required")
        self._tier_rules = tuple(sorted(tier_rules, key=lambda r: r.min_score, reverse=True))
        self._condition_rules = condition_rules

    def select_tier_rule(self, overall: float) -> TierRule:
        """Get the score-tier rule for an overall score."""
        for rule in self._tier_rules:
            if overall >= rule.min_score:
                return rule
        return self._tier_rules[-1]

    def fired_conditions(self, context: EvaluationContext) -> list[ConditionRule]:
        """Get the condition rules whose predicate holds, in table order."""
        return [rule for rule in self._condition_rules if rule.predicate(context)]

    def evaluate(
        self,
        overall: int,
        per_metric: ScoreResult,
        metrics: RawMetrics,
    ) -> list[TriggerDirective]:
        """Evaluate all rules for one KPI evaluation.

        Args:
            overall: Overall score.
            per_metric: Scoring engine output.
            metrics: Canonical metrics the score was computed from.

        Returns:
            Tier-rule directives followed by condition-rule directives.
        """
        context = EvaluationContext(overall=overall, scores=per_metric, metrics=metrics)

        tier_rule = self.select_tier_rule(overall)
        directives: list[TriggerDirective] = tier_rule.build(context)

        fired = self.fired_conditions(context)
        for rule in fired:
            directives.extend(rule.build(context))

        logger.debug(
            "Evaluated rules: tier=%s conditions=%s directives=%d",
            tier_rule.name,
            [rule.name for rule in fired],
            len(directives),
        )
        return directives
