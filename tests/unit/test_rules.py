# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the trigger rule engine."""

import pytest

from kpisynapse.core.kpi.rules import (
    CONDITION_RULES,
    SCORE_TIER_RULES,
    AuditDirective,
    AuditTemplate,
    EvaluationContext,
    RewardTemplate,
    RewardDirective,
    TrainingDirective,
    TrainingTemplate,
    TriggerRuleEngine,
    WarningDirective,
    WarningTemplate,
    improvement_areas,
)
from kpisynapse.core.kpi.scoring import ScoringEngine
from kpisynapse.core.kpi.types import (
    ALL_ROLES,
    RATING_TIERS,
    AuditType,
    Priority,
    RawMetrics,
    Rating,
    RecipientRole,
    TrainingType,
)

TOP_METRICS = RawMetrics(
    turnaround_time=96,
    major_negativity=0,
    quality_concern=0,
    neighbor_check=92,
    general_negativity=5,
    app_usage=85,
    insufficiency=0.5,
)

LOWEST_METRICS = RawMetrics(
    turnaround_time=50,
    major_negativity=5,
    quality_concern=2,
    neighbor_check=50,
    general_negativity=50,
    app_usage=50,
    insufficiency=5,
)


@pytest.fixture
def scoring() -> ScoringEngine:
    return ScoringEngine()


@pytest.fixture
def rules() -> TriggerRuleEngine:
    return TriggerRuleEngine()


def evaluate(scoring: ScoringEngine, rules: TriggerRuleEngine, metrics: RawMetrics):
    scores = scoring.score(metrics)
    return scores, rules.evaluate(scores.overall, scores, metrics)


def rules_fired(directives) -> list[str]:
    return list(dict.fromkeys(d.rule for d in directives))


class TestRuleTables:
    """Tests for the rule table definitions."""

    def test_tier_rules_follow_rating_table(self) -> None:
        """Tier rules and the scoring engine share one set of boundaries."""
        assert [(r.min_score, r.rating) for r in SCORE_TIER_RULES] == list(RATING_TIERS)

    def test_condition_rule_order(self) -> None:
        assert [r.name for r in CONDITION_RULES] == [
            "score_below_55",
            "score_below_40",
            "major_negativity",
            "quality_concern",
            "app_usage",
            "insufficiency",
        ]

    @pytest.mark.parametrize(
        "overall,rating",
        [(85, Rating.OUTSTANDING), (84, Rating.EXCELLENT), (70, Rating.EXCELLENT),
         (69, Rating.SATISFACTORY), (50, Rating.SATISFACTORY), (49, Rating.NEED_IMPROVEMENT),
         (40, Rating.NEED_IMPROVEMENT), (39, Rating.UNSATISFACTORY), (0, Rating.UNSATISFACTORY)],
    )
    def test_exactly_one_tier_rule_per_score(
        self, rules: TriggerRuleEngine, overall: int, rating: Rating
    ) -> None:
        assert rules.select_tier_rule(overall).rating == rating

    def test_requires_tier_rules(self) -> None:
        with pytest.raises(ValueError):
            TriggerRuleEngine(tier_rules=())


class TestScenarios:
    """End-to-end rule evaluation from raw metrics."""

    def test_top_scenario_only_rewards(self, scoring: ScoringEngine, rules: TriggerRuleEngine) -> None:
        scores, directives = evaluate(scoring, rules, TOP_METRICS)

        assert scores.overall == 100
        assert len(directives) == 1
        reward = directives[0]
        assert isinstance(reward, RewardDirective)
        assert reward.recipients == frozenset(
            {RecipientRole.SUBJECT, RecipientRole.MANAGER, RecipientRole.DEPARTMENT_HEAD}
        )

    def test_lowest_bracket_scenario(self, scoring: ScoringEngine, rules: TriggerRuleEngine) -> None:
        scores, directives = evaluate(scoring, rules, LOWEST_METRICS)

        assert scores.rating == Rating.UNSATISFACTORY
        assert rules_fired(directives) == [
            "tier_unsatisfactory",
            "score_below_55",
            "score_below_40",
            "quality_concern",
            "app_usage",
            "insufficiency",
        ]

        tier = [d for d in directives if d.rule == "tier_unsatisfactory"]
        assert [d.action for d in tier] == [
            "basic_training",
            "audit_call",
            "cross_check",
            "dummy_audit",
            "warning_letter",
        ]

        below_40 = [d for d in directives if d.rule == "score_below_40"]
        assert [type(d) for d in below_40] == [TrainingDirective, AuditDirective, WarningDirective]
        assert len(directives) == 14

    def test_score_39_with_negativity_receives_the_union(
        self, scoring: ScoringEngine, rules: TriggerRuleEngine
    ) -> None:
        """Tier, both score conditions and the negativity condition all fire."""
        metrics = RawMetrics(
            turnaround_time=0,
            major_negativity=1,
            quality_concern=1,
            neighbor_check=80,
            general_negativity=10,
            app_usage=80,
            insufficiency=2,
        )

        scores, directives = evaluate(scoring, rules, metrics)

        assert scores.overall == 39
        assert rules_fired(directives) == [
            "tier_unsatisfactory",
            "score_below_55",
            "score_below_40",
            "major_negativity",
        ]
        negativity = [d for d in directives if d.rule == "major_negativity"]
        assert isinstance(negativity[0], TrainingDirective)
        assert negativity[0].training_type == TrainingType.NEGATIVITY_HANDLING
        assert isinstance(negativity[1], AuditDirective)
        assert negativity[1].audit_type == AuditType.AUDIT_CALL
        assert sum(isinstance(d, WarningDirective) for d in directives) == 2

    def test_directives_are_not_deduplicated(
        self, scoring: ScoringEngine, rules: TriggerRuleEngine
    ) -> None:
        """Tier and condition rules requesting basic training both appear."""
        _, directives = evaluate(scoring, rules, LOWEST_METRICS)

        basic = [
            d for d in directives
            if isinstance(d, TrainingDirective) and d.training_type == TrainingType.BASIC
        ]
        assert [d.rule for d in basic] == ["tier_unsatisfactory", "score_below_55", "score_below_40"]
        assert len({d.justification for d in basic}) == 3

    def test_evaluation_is_deterministic(self, scoring: ScoringEngine, rules: TriggerRuleEngine) -> None:
        _, first = evaluate(scoring, rules, LOWEST_METRICS)
        _, second = evaluate(scoring, rules, LOWEST_METRICS)

        assert first == second
        assert [d.to_dict() for d in first] == [d.to_dict() for d in second]


class TestTierRules:
    """Directive contents of each score tier."""

    def test_excellent_tier_low_priority_audit(self, rules: TriggerRuleEngine) -> None:
        metrics = RawMetrics(app_usage=90)
        scores = ScoringEngine().score(metrics)

        directives = rules.evaluate(75, scores, metrics)

        assert len(directives) == 1
        audit = directives[0]
        assert isinstance(audit, AuditDirective)
        assert audit.audit_type == AuditType.AUDIT_CALL
        assert audit.priority == Priority.LOW
        assert audit.recipients == frozenset({RecipientRole.COMPLIANCE, RecipientRole.DEPARTMENT_HEAD})

    def test_satisfactory_tier_cross_check(self, rules: TriggerRuleEngine) -> None:
        metrics = RawMetrics(app_usage=90)
        scores = ScoringEngine().score(metrics)

        directives = rules.evaluate(60, scores, metrics)

        assert [d.action for d in directives] == ["audit_call", "cross_check"]
        assert "last 3 months" in directives[1].justification

    def test_need_improvement_priorities(self, rules: TriggerRuleEngine) -> None:
        metrics = RawMetrics(app_usage=90)
        scores = ScoringEngine().score(metrics)

        directives = [d for d in rules.evaluate(45, scores, metrics) if d.rule == "tier_need_improvement"]

        assert [(d.action, d.priority) for d in directives] == [
            ("basic_training", Priority.MEDIUM),
            ("audit_call", Priority.HIGH),
            ("cross_check", Priority.MEDIUM),
            ("dummy_audit", Priority.HIGH),
        ]
        assert all(d.recipients == ALL_ROLES for d in directives)


class TestConditionRules:
    """Each condition rule fires independently."""

    @pytest.mark.parametrize(
        "metrics,rule,fires",
        [
            (RawMetrics(app_usage=90, major_negativity=0.5, general_negativity=24.9), "major_negativity", True),
            (RawMetrics(app_usage=90, major_negativity=0.5, general_negativity=25), "major_negativity", False),
            (RawMetrics(app_usage=90, major_negativity=0, general_negativity=10), "major_negativity", False),
            (RawMetrics(app_usage=90, quality_concern=1.01), "quality_concern", True),
            (RawMetrics(app_usage=90, quality_concern=1), "quality_concern", False),
            (RawMetrics(app_usage=79.9), "app_usage", True),
            (RawMetrics(app_usage=80), "app_usage", False),
            (RawMetrics(app_usage=90, insufficiency=2.01), "insufficiency", True),
            (RawMetrics(app_usage=90, insufficiency=2), "insufficiency", False),
        ],
    )
    def test_metric_predicates(
        self, rules: TriggerRuleEngine, metrics: RawMetrics, rule: str, fires: bool
    ) -> None:
        scores = ScoringEngine().score(metrics)

        directives = rules.evaluate(75, scores, metrics)

        assert (rule in rules_fired(directives)) is fires

    def test_app_usage_is_training_only(self, rules: TriggerRuleEngine) -> None:
        metrics = RawMetrics(app_usage=10)
        scores = ScoringEngine().score(metrics)

        directives = [d for d in rules.evaluate(75, scores, metrics) if d.rule == "app_usage"]

        assert len(directives) == 1
        assert directives[0].training_type == TrainingType.APP_USAGE

    def test_insufficiency_is_audit_only(self, rules: TriggerRuleEngine) -> None:
        metrics = RawMetrics(app_usage=90, insufficiency=3)
        scores = ScoringEngine().score(metrics)

        directives = [d for d in rules.evaluate(75, scores, metrics) if d.rule == "insufficiency"]

        assert len(directives) == 1
        assert directives[0].audit_type == AuditType.CROSS_VERIFY_INSUFF
        assert directives[0].priority == Priority.HIGH
        assert directives[0].recipients == frozenset(
            {RecipientRole.COMPLIANCE, RecipientRole.DEPARTMENT_HEAD}
        )

    def test_quality_rule_is_high_priority(self, rules: TriggerRuleEngine) -> None:
        metrics = RawMetrics(app_usage=90, quality_concern=1.5)
        scores = ScoringEngine().score(metrics)

        directives = [d for d in rules.evaluate(75, scores, metrics) if d.rule == "quality_concern"]

        assert [d.action for d in directives] == ["dos_donts_training", "root_cause_review"]
        assert all(d.priority == Priority.HIGH for d in directives)

    def test_score_condition_priority_follows_overall(self, rules: TriggerRuleEngine) -> None:
        metrics = RawMetrics(app_usage=90)
        scores = ScoringEngine().score(metrics)

        directives = [d for d in rules.evaluate(52, scores, metrics) if d.rule == "score_below_55"]

        assert all(d.priority == Priority.MEDIUM for d in directives)


class TestTemplates:
    """Each template builds exactly one directive kind."""

    @staticmethod
    def context(metrics: RawMetrics) -> EvaluationContext:
        scores = ScoringEngine().score(metrics)
        return EvaluationContext(overall=scores.overall, scores=scores, metrics=metrics)

    def test_kinds(self) -> None:
        context = self.context(TOP_METRICS)
        roles = frozenset({RecipientRole.SUBJECT})

        built = [
            template.build(context, "reason", roles, "rule")
            for template in (
                TrainingTemplate(TrainingType.BASIC),
                AuditTemplate(AuditType.AUDIT_CALL, note="extra"),
                WarningTemplate(),
                RewardTemplate(),
            )
        ]

        assert [type(d) for d in built] == [
            TrainingDirective,
            AuditDirective,
            WarningDirective,
            RewardDirective,
        ]
        assert built[0].justification == "reason"
        assert built[1].justification == "reason (extra)"

    def test_priority_follows_score_unless_given(self) -> None:
        roles = frozenset({RecipientRole.SUBJECT})
        low = self.context(LOWEST_METRICS)
        high = self.context(TOP_METRICS)

        assert TrainingTemplate(TrainingType.BASIC).build(low, "r", roles, "x").priority == Priority.HIGH
        assert TrainingTemplate(TrainingType.BASIC).build(high, "r", roles, "x").priority == Priority.MEDIUM
        assert (
            AuditTemplate(AuditType.AUDIT_CALL, Priority.LOW).build(low, "r", roles, "x").priority
            == Priority.LOW
        )


class TestImprovementAreas:
    """Tests for warning improvement areas."""

    def test_lowest_bracket_lists_every_metric(self) -> None:
        scores = ScoringEngine().score(LOWEST_METRICS)

        assert len(improvement_areas(scores)) == 7

    def test_top_scenario_lists_nothing(self) -> None:
        scores = ScoringEngine().score(TOP_METRICS)

        assert improvement_areas(scores) == []

    def test_warning_carries_improvement_areas(self, rules: TriggerRuleEngine) -> None:
        scores = ScoringEngine().score(LOWEST_METRICS)

        warning = next(
            d for d in rules.evaluate(scores.overall, scores, LOWEST_METRICS)
            if isinstance(d, WarningDirective)
        )

        assert "Turn Around Time (TAT) below target" in warning.improvement_areas
