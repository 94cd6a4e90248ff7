# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Metric aggregation from learning activity.

MetricAggregator reduces one user's activity in a period to the seven
canonical KPI percentages. It only normalizes shape: each metric is a
banded percentage that the scoring engine later turns into points.

Empty inputs yield 0 for every metric. For the lower-is-better metrics
that means full credit, for the higher-is-better ones no credit.

Usage:
    aggregator = MetricAggregator(identity, activity_store)
    metrics = await aggregator.aggregate(user_id, "2025-10")
"""

import logging
from typing import Callable

from kpisynapse.core.kpi.period import period_bounds
from kpisynapse.core.kpi.types import RawMetrics
from kpisynapse.domains.identity.directory import IdentityDirectory, UserIdentity
from kpisynapse.domains.kpi.activity import (
    ActivitySnapshot,
    ActivityStore,
    ModuleActivity,
    ProgressActivity,
    QuizActivity,
)

logger = logging.getLogger(__name__)

LOW_PROGRESS_PERCENTAGE = 60
INCOMPLETE_MODULE_STATUSES = frozenset({"not_started", "failed"})


def _band(value: float, bands: tuple[tuple[float, float], ...], fallback: float) -> float:
    """Return the first band result whose upper bound ``value`` does not exceed."""
    for bound, result in bands:
        if value <= bound:
            return result
    return fallback


def _rate(count: int, total: int) -> float:
    return count / total * 100


def turnaround_from_quizzes(attempts: list[QuizActivity]) -> float:
    """Shorter mean quiz time maps to higher turnaround compliance."""
    if not attempts:
        return 0.0
    mean_minutes = sum(a.time_spent_seconds for a in attempts) / len(attempts) / 60
    return _band(mean_minutes, ((10, 95), (15, 85), (20, 70), (30, 50)), 25)


def major_negativity_from_quizzes(attempts: list[QuizActivity]) -> float:
    """Per-attempt violation rates mapped to a major-negativity percentage."""
    if not attempts:
        return 0.0
    total = len(attempts)
    violation_rate = _rate(sum(a.violation_count for a in attempts), total)
    critical_rate = _rate(sum(a.critical_violation_count for a in attempts), total)

    if critical_rate == 0 and violation_rate <= 5:
        return 0.0
    if critical_rate <= 1 and violation_rate <= 10:
        return 1.0
    if critical_rate <= 2 and violation_rate <= 20:
        return 2.0
    if critical_rate <= 3 and violation_rate <= 30:
        return 3.0
    return 5.0


def quality_from_quizzes(attempts: list[QuizActivity]) -> float:
    """Pass rate and mean score mapped to a quality-concern percentage."""
    if not attempts:
        return 0.0
    pass_rate = _rate(sum(1 for a in attempts if a.passed), len(attempts))
    mean_score = sum(a.score for a in attempts) / len(attempts)

    for min_pass, min_score, concern in ((90, 80, 0.0), (80, 70, 0.5), (70, 60, 1.0), (60, 50, 1.5)):
        if pass_rate >= min_pass and mean_score >= min_score:
            return concern
    return 2.0


def neighbor_check_from_modules(modules: list[ModuleActivity]) -> float:
    if not modules:
        return 0.0
    completion = _rate(sum(1 for m in modules if m.status == "completed"), len(modules))
    for minimum, result in ((90, 95), (80, 85), (70, 70), (60, 50)):
        if completion >= minimum:
            return float(result)
    return 25.0


def general_negativity_from_progress(progress: list[ProgressActivity]) -> float:
    if not progress:
        return 0.0
    low = sum(1 for p in progress if p.best_percentage < LOW_PROGRESS_PERCENTAGE)
    return _band(_rate(low, len(progress)), ((5, 5), (10, 15), (20, 25), (30, 35)), 50)


def app_usage_from_progress(progress: list[ProgressActivity]) -> float:
    """Video watch rate and mean watch seconds mapped to app usage."""
    if not progress:
        return 0.0
    watch_rate = _rate(sum(1 for p in progress if p.video_watched), len(progress))
    mean_watch = sum(p.total_watch_time for p in progress) / len(progress)

    for min_rate, min_seconds, usage in ((90, 300, 95), (80, 240, 85), (70, 180, 70), (60, 120, 50)):
        if watch_rate >= min_rate and mean_watch >= min_seconds:
            return float(usage)
    return 25.0


def insufficiency_from_modules(modules: list[ModuleActivity]) -> float:
    if not modules:
        return 0.0
    incomplete = sum(1 for m in modules if m.status in INCOMPLETE_MODULE_STATUSES)
    return _band(_rate(incomplete, len(modules)), ((5, 0), (10, 1), (20, 2), (30, 3)), 5)


def metrics_from_activity(snapshot: ActivitySnapshot) -> RawMetrics:
    """Reduce an activity snapshot to canonical metrics."""
    return RawMetrics(
        turnaround_time=turnaround_from_quizzes(snapshot.quiz_attempts),
        major_negativity=major_negativity_from_quizzes(snapshot.quiz_attempts),
        quality_concern=quality_from_quizzes(snapshot.quiz_attempts),
        neighbor_check=neighbor_check_from_modules(snapshot.modules),
        general_negativity=general_negativity_from_progress(snapshot.progress),
        app_usage=app_usage_from_progress(snapshot.progress),
        insufficiency=insufficiency_from_modules(snapshot.modules),
    )


class MetricAggregator:
    """Builds RawMetrics for a user and period from the activity store.

    Attributes:
        identity: Directory used to resolve the user.
        activity: Store the activity is read from.
        tz: Timezone whose calendar months are the periods. Defaults to UTC.
    """

    def __init__(
        self,
        identity: IdentityDirectory,
        activity: ActivityStore,
        reducer: Callable[[ActivitySnapshot], RawMetrics] = metrics_from_activity,
        tz: str | None = None,
    ) -> None:
        self.identity = identity
        self.activity = activity
        self._reduce = reducer
        self.tz = tz

    async def aggregate(self, user_id: str, period: str) -> RawMetrics:
        """Aggregate metrics for a user id.

        Raises:
            NotFoundError: If the user cannot be resolved.
            ValidationError: If the period is malformed.
        """
        user = await self.identity.get_user(user_id)
        return await self.aggregate_for(user, period)

    async def aggregate_for(self, user: UserIdentity, period: str) -> RawMetrics:
        """Aggregate metrics for an already resolved user."""
        start, end = period_bounds(period, self.tz)
        snapshot = await self.activity.fetch_activity(user.id, start, end)
        metrics = self._reduce(snapshot)

        if snapshot.is_empty:
            logger.info("No activity for user %s in %s", user.id, period)
        else:
            logger.debug("Aggregated metrics for user %s in %s: %s", user.id, period, metrics.to_dict())
        return metrics
