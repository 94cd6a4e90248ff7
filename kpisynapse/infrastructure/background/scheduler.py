# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""KPI scheduler driving the pipeline on three cadences.

Uses APScheduler for cron and interval triggers:
- daily: full re-evaluation of all active users for the current period,
  plus flagging overdue trainings
- realtime: re-evaluation of users with activity in the last interval
- monthly: close-of-period evaluation of the previous period

Each cadence moves Idle -> Running -> Idle. Starting a cadence that is
already running raises ConcurrentRunRejectedError.

KPIScheduler is a context object: build one at startup, pass it to
whatever needs it and stop it at shutdown.

Example:
    scheduler = KPIScheduler(pipeline, settings.scheduler)
    await scheduler.start()

    # Manual entry points
    await scheduler.run_for_user(user_id, trigger_reason="manual")
    status = await scheduler.get_status()

    await scheduler.stop()
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from kpisynapse.core.config.settings import SchedulerSettings
from kpisynapse.core.kpi.exceptions import (
    ConcurrentRunRejectedError,
    DependencyUnavailableError,
)
from kpisynapse.core.kpi.period import previous_period, validate_period
from kpisynapse.domains.kpi.pipeline import BatchResult, KPIPipeline, UserRunResult
from kpisynapse.infrastructure.database.connection import check_database_connection
from kpisynapse.utils.datetime import format_iso, utc_now
from kpisynapse.utils.logging import bind_context, clear_context, get_logger

logger = logging.getLogger(__name__)
run_logger = get_logger(__name__)


class Cadence(str, Enum):
    """Scheduled KPI runs."""

    DAILY = "daily"
    REALTIME = "realtime"
    MONTHLY = "monthly"


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


CADENCE_REASONS: dict[Cadence, str] = {
    Cadence.DAILY: "scheduled_daily",
    Cadence.REALTIME: "activity_realtime",
    Cadence.MONTHLY: "scheduled_monthly",
}


@dataclass
class CadenceState:
    """Run state and last-run counters of one cadence.

    Attributes:
        cadence: The cadence.
        state: Idle or running.
        run_id: Id of the current or last run.
        last_started_at: Start of the last run.
        last_finished_at: End of the last run.
        run_count: Completed runs, failed ones included.
        error_count: Runs that raised.
        rejected_count: Starts rejected because a run was in progress.
        last_result: Batch summary of the last successful run.
        last_error: Cause of the last failed run.
    """

    cadence: Cadence
    state: RunState = RunState.IDLE
    run_id: str | None = None
    last_started_at: datetime | None = None
    last_finished_at: datetime | None = None
    run_count: int = 0
    error_count: int = 0
    rejected_count: int = 0
    last_result: dict[str, Any] | None = None
    last_error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_running(self) -> bool:
        return self.state == RunState.RUNNING

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "cadence": self.cadence.value,
            "state": self.state.value,
            "run_id": self.run_id,
            "last_started_at": format_iso(self.last_started_at),
            "last_finished_at": format_iso(self.last_finished_at),
            "run_count": self.run_count,
            "error_count": self.error_count,
            "rejected_count": self.rejected_count,
            "last_result": self.last_result,
            "last_error": self.last_error,
            **self.extra,
        }


def _cron_trigger(expression: str, timezone: str) -> CronTrigger:
    parts = expression.split()
    if len(parts) != 5:
        raise ValueError(f"Invalid cron expression: {expression}")

    return CronTrigger(
        minute=parts[0],
        hour=parts[1],
        day=parts[2],
        month=parts[3],
        day_of_week=parts[4],
        timezone=timezone,
    )


class KPIScheduler:
    """Owns the APScheduler jobs and the run state of each cadence.

    Attributes:
        pipeline: Pipeline every run goes through.
        settings: Cadence configuration.
    """

    def __init__(self, pipeline: KPIPipeline, settings: SchedulerSettings) -> None:
        self.pipeline = pipeline
        self.settings = settings
        self._scheduler: AsyncIOScheduler | None = None
        self._states: dict[Cadence, CadenceState] = {c: CadenceState(c) for c in Cadence}
        self._last_manual: dict[str, Any] | None = None

    @property
    def is_running(self) -> bool:
        """Check if the APScheduler loop is running."""
        return self._scheduler is not None

    def state(self, cadence: Cadence) -> CadenceState:
        return self._states[cadence]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _register_jobs(self, scheduler: AsyncIOScheduler) -> None:
        triggers = {
            Cadence.DAILY: _cron_trigger(self.settings.daily_cron, self.settings.timezone),
            Cadence.REALTIME: IntervalTrigger(
                minutes=self.settings.realtime_interval_minutes,
                timezone=self.settings.timezone,
            ),
            Cadence.MONTHLY: _cron_trigger(self.settings.monthly_cron, self.settings.timezone),
        }

        for cadence, trigger in triggers.items():
            scheduler.add_job(
                self._run_scheduled,
                trigger=trigger,
                args=[cadence],
                id=f"kpi_{cadence.value}",
                name=f"KPI {cadence.value} run",
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            logger.info("Registered KPI cadence %s (%s)", cadence.value, trigger)

    async def start(self) -> None:
        """Start the scheduler and register the cadences.

        Does nothing when already running or disabled in settings.
        """
        if self._scheduler is not None:
            return

        if not self.settings.enabled:
            logger.info("KPI scheduler disabled by configuration")
            return

        scheduler = AsyncIOScheduler(timezone=self.settings.timezone)
        self._register_jobs(scheduler)
        scheduler.start()
        self._scheduler = scheduler

        logger.info("KPI scheduler started (timezone: %s)", self.settings.timezone)

    async def stop(self) -> None:
        """Stop the scheduler. Runs in progress are not cancelled."""
        if self._scheduler is None:
            return

        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("KPI scheduler stopped")

    async def _run_scheduled(self, cadence: Cadence) -> None:
        """APScheduler entry point. Errors are recorded on the cadence state."""
        try:
            await self.run_cadence(cadence)
        except ConcurrentRunRejectedError as e:
            logger.warning("Skipped scheduled run: %s", e.message)
        except Exception as e:
            logger.error("Scheduled KPI %s run failed: %s", cadence.value, str(e))

    # =========================================================================
    # Runs
    # =========================================================================

    async def run_cadence(self, cadence: Cadence) -> BatchResult:
        """Run one cadence now.

        Raises:
            ConcurrentRunRejectedError: If the cadence is already running.
            DependencyUnavailableError: If persistence is unreachable.
        """
        state = self._states[cadence]
        if state.is_running:
            state.rejected_count += 1
            raise ConcurrentRunRejectedError(cadence.value, {"run_id": state.run_id})

        try:
            # Flip to running before the first await
            state.state = RunState.RUNNING
            state.run_id = str(uuid4())
            state.last_started_at = utc_now()
            bind_context(cadence=cadence.value, run_id=state.run_id)
            run_logger.info("KPI cadence started")

            batch = await self._execute(cadence, state)
        except Exception as e:
            state.error_count += 1
            state.last_error = str(e)
            run_logger.error("KPI cadence failed", error=str(e))
            raise
        else:
            state.last_result = batch.to_dict()
            state.last_error = None
            run_logger.info(
                "KPI cadence finished",
                total=batch.total,
                succeeded=batch.succeeded,
                failed=batch.failed,
            )
            return batch
        finally:
            state.state = RunState.IDLE
            state.last_finished_at = utc_now()
            state.run_count += 1
            clear_context()

    async def _execute(self, cadence: Cadence, state: CadenceState) -> BatchResult:
        if not await check_database_connection(self.pipeline.session_factory):
            raise DependencyUnavailableError("persistence")

        period = self.pipeline.current_period()

        if cadence == Cadence.DAILY:
            state.extra["overdue_trainings"] = await self.pipeline.mark_overdue_trainings()
            user_ids = await self.pipeline.list_active_user_ids()
        elif cadence == Cadence.REALTIME:
            user_ids = await self.pipeline.users_with_recent_activity(
                self.settings.realtime_interval_minutes
            )
        else:
            period = previous_period(period)
            user_ids = await self.pipeline.list_active_user_ids()

        run_logger.info("Evaluating users", period=period, users=len(user_ids))
        return await self.pipeline.run_batch(
            user_ids,
            period,
            reason=CADENCE_REASONS[cadence],
            max_concurrency=self.settings.max_concurrency,
        )

    async def run_for_period(self, period: str) -> BatchResult:
        """Evaluate all active users for a period outside the cadences."""
        validate_period(period)
        user_ids = await self.pipeline.list_active_user_ids()
        batch = await self.pipeline.run_batch(
            user_ids,
            period,
            reason="manual_period",
            max_concurrency=self.settings.max_concurrency,
        )
        self._last_manual = batch.to_dict()
        return batch

    async def run_for_user(self, user_id: str, trigger_reason: str = "manual") -> UserRunResult:
        """Evaluate one user for the current period."""
        return await self.pipeline.run_for_user(user_id, trigger_reason=trigger_reason)

    async def get_pending_triggers(self, limit: int = 100) -> list[dict[str, Any]]:
        return await self.pipeline.get_pending_triggers(limit)

    async def get_trigger_history(self, user_id: str, limit: int = 10) -> list[dict[str, Any]]:
        return await self.pipeline.get_trigger_history(user_id, limit)

    # =========================================================================
    # Status
    # =========================================================================

    def _next_run(self, cadence: Cadence) -> str | None:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(f"kpi_{cadence.value}")
        return format_iso(job.next_run_time) if job and job.next_run_time else None

    async def get_status(self) -> dict[str, Any]:
        """Get cadence run state merged with automation statistics.

        Statistics failures are reported in the result instead of raised,
        so operators always see the last-run counts.
        """
        cadences = {}
        for cadence, state in self._states.items():
            data = state.to_dict()
            data["next_run_at"] = self._next_run(cadence)
            cadences[cadence.value] = data

        status: dict[str, Any] = {
            "is_running": self.is_running,
            "enabled": self.settings.enabled,
            "timezone": self.settings.timezone,
            "cadences": cadences,
            "last_manual_run": self._last_manual,
        }

        try:
            status["statistics"] = await self.pipeline.get_automation_statistics()
        except Exception as e:
            logger.error("Failed to load automation statistics: %s", str(e))
            status["statistics"] = None
            status["statistics_error"] = str(e)

        return status
