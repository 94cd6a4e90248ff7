# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Activity read store for the metric aggregator.

ActivityStore is the only place that knows where learning activity
lives. The aggregator reads a snapshot for one user and window, and the
near-real-time cadence asks it which users were recently active.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select, union
from sqlalchemy.ext.asyncio import AsyncSession

from kpisynapse.infrastructure.database.models import QuizAttempt, UserModule, UserProgress
from kpisynapse.utils.datetime import minutes_ago, utc_now

logger = logging.getLogger(__name__)

CRITICAL_SEVERITIES = frozenset({"critical", "high"})


@dataclass(frozen=True)
class QuizActivity:
    """One quiz attempt as seen by the aggregator."""

    time_spent_seconds: float = 0.0
    score: float = 0.0
    passed: bool = False
    violation_severities: tuple[str, ...] = ()

    @property
    def violation_count(self) -> int:
        return len(self.violation_severities)

    @property
    def critical_violation_count(self) -> int:
        return sum(1 for s in self.violation_severities if s.lower() in CRITICAL_SEVERITIES)


@dataclass(frozen=True)
class ProgressActivity:
    """Progress on one module."""

    best_percentage: float = 0.0
    total_watch_time: float = 0.0
    video_watched: bool = False


@dataclass(frozen=True)
class ModuleActivity:
    """Enrolment status of one module."""

    status: str


@dataclass
class ActivitySnapshot:
    """All activity of one user inside one window."""

    user_id: str
    start: datetime
    end: datetime
    quiz_attempts: list[QuizActivity] = field(default_factory=list)
    progress: list[ProgressActivity] = field(default_factory=list)
    modules: list[ModuleActivity] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.quiz_attempts or self.progress or self.modules)


class ActivityStore(ABC):
    """Read-only access to per-user learning activity."""

    @abstractmethod
    async def fetch_activity(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> ActivitySnapshot:
        """Fetch activity with timestamps in ``[start, end]``."""

    @abstractmethod
    async def users_with_recent_activity(
        self,
        window_minutes: float,
        now: datetime | None = None,
    ) -> list[str]:
        """List ids of users with any activity in the last window, sorted."""


def _severities(violations: list | None) -> tuple[str, ...]:
    severities = []
    for violation in violations or []:
        if isinstance(violation, dict):
            severities.append(str(violation.get("severity") or ""))
        else:
            severities.append("")
    return tuple(severities)


class DatabaseActivityStore(ActivityStore):
    """ActivityStore over the quiz, progress and module tables."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def fetch_activity(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> ActivitySnapshot:
        quiz_rows = await self._session.execute(
            select(QuizAttempt).where(
                QuizAttempt.user_id == user_id,
                QuizAttempt.started_at >= start,
                QuizAttempt.started_at <= end,
            )
        )
        progress_rows = await self._session.execute(
            select(UserProgress).where(
                UserProgress.user_id == user_id,
                UserProgress.last_accessed_at >= start,
                UserProgress.last_accessed_at <= end,
            )
        )
        module_rows = await self._session.execute(
            select(UserModule).where(
                UserModule.user_id == user_id,
                UserModule.updated_at >= start,
                UserModule.updated_at <= end,
            )
        )

        snapshot = ActivitySnapshot(
            user_id=user_id,
            start=start,
            end=end,
            quiz_attempts=[
                QuizActivity(
                    time_spent_seconds=attempt.time_spent_seconds or 0,
                    score=attempt.score or 0.0,
                    passed=bool(attempt.passed),
                    violation_severities=_severities(attempt.violations),
                )
                for attempt in quiz_rows.scalars().all()
            ],
            progress=[
                ProgressActivity(
                    best_percentage=progress.best_percentage or 0.0,
                    total_watch_time=progress.total_watch_time or 0,
                    video_watched=bool(progress.video_watched),
                )
                for progress in progress_rows.scalars().all()
            ],
            modules=[ModuleActivity(status=module.status) for module in module_rows.scalars().all()],
        )

        logger.debug(
            "Fetched activity for user %s: quizzes=%d progress=%d modules=%d",
            user_id,
            len(snapshot.quiz_attempts),
            len(snapshot.progress),
            len(snapshot.modules),
        )
        return snapshot

    async def users_with_recent_activity(
        self,
        window_minutes: float,
        now: datetime | None = None,
    ) -> list[str]:
        since = minutes_ago(window_minutes, now or utc_now())
        query = union(
            select(QuizAttempt.user_id).where(QuizAttempt.started_at >= since),
            select(UserProgress.user_id).where(UserProgress.last_accessed_at >= since),
            select(UserModule.user_id).where(UserModule.updated_at >= since),
        )
        result = await self._session.execute(query)
        return sorted({row[0] for row in result.all()})
