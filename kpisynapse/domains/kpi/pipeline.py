# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""KPI pipeline: aggregate, score, evaluate rules, execute actions.

For one user and period the stages run strictly in sequence:

    MetricAggregator -> ScoringEngine -> TriggerRuleEngine -> ActionOrchestrator

Each user runs in its own database session. Batches run users with
bounded parallelism and catch per-user failures into the batch result,
so one failing user never aborts the others.

Re-evaluation always goes through the update-or-create path and leaves
the active record pending. Triggers only execute for the runner that
wins the pending -> processing claim.

Usage:
    pipeline = KPIPipeline(sessionmaker, settings, EmailChannel(settings.smtp))
    result = await pipeline.run_for_user(user_id, trigger_reason="manual")
    batch = await pipeline.run_batch(user_ids, "2025-10", reason="daily")
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kpisynapse.core.config.settings import Settings
from kpisynapse.core.kpi.exceptions import DependencyUnavailableError
from kpisynapse.core.kpi.period import current_period, validate_period
from kpisynapse.core.kpi.rules import TriggerRuleEngine
from kpisynapse.core.kpi.scoring import ScoringEngine
from kpisynapse.domains.identity.directory import (
    DatabaseIdentityDirectory,
    IdentityDirectory,
    UserIdentity,
)
from kpisynapse.domains.kpi.activity import ActivityStore, DatabaseActivityStore
from kpisynapse.domains.kpi.aggregator import MetricAggregator
from kpisynapse.domains.kpi.bulk_import import BulkImportService, ImportReport
from kpisynapse.domains.kpi.orchestrator import ActionOrchestrator, ExecutionReport
from kpisynapse.domains.kpi.records import KPIRecordService
from kpisynapse.infrastructure.database.models import KPIRecord, KPISource
from kpisynapse.infrastructure.notifications.channels import BaseChannel
from kpisynapse.utils.datetime import utc_now
from kpisynapse.utils.logging import get_logger

logger = logging.getLogger(__name__)
batch_logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class UserRunResult:
    """Outcome of one user's pipeline run.

    Attributes:
        user_id: Evaluated user.
        period: Evaluated period.
        success: False if any stage raised or automation failed.
        record_id: Active KPI record written by the run.
        created: Whether the record was created rather than updated.
        processed: Whether this run executed the record's triggers.
        skipped: True when another runner had already claimed the record.
        overall_score: Overall score written to the record.
        rating: Rating written to the record.
        directives: Number of directives executed.
        error: Failure cause.
    """

    user_id: str
    period: str | None = None
    success: bool = True
    record_id: str | None = None
    created: bool | None = None
    processed: bool = False
    skipped: bool = False
    overall_score: int | None = None
    rating: str | None = None
    directives: int = 0
    emails_sent: int = 0
    emails_failed: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "period": self.period,
            "success": self.success,
            "record_id": self.record_id,
            "created": self.created,
            "processed": self.processed,
            "skipped": self.skipped,
            "overall_score": self.overall_score,
            "rating": self.rating,
            "directives": self.directives,
            "emails_sent": self.emails_sent,
            "emails_failed": self.emails_failed,
            "error": self.error,
        }


@dataclass
class BatchResult:
    """Outcome of a batch of user runs."""

    reason: str
    period: str | None = None
    results: list[UserRunResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.skipped)

    def to_dict(self) -> dict[str, Any]:
        return {
            "reason": self.reason,
            "period": self.period,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "failures": [
                {"user_id": r.user_id, "error": r.error} for r in self.results if not r.success
            ],
        }


class KPIPipeline:
    """Runs the KPI pipeline for users, pending records and batches.

    Attributes:
        settings: Application settings.
        transport: Email channel handed to the orchestrator.
        scoring: Scoring engine.
        rules: Trigger rule engine.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        transport: BaseChannel,
        identity_factory: Callable[[AsyncSession], IdentityDirectory] = DatabaseIdentityDirectory,
        activity_factory: Callable[[AsyncSession], ActivityStore] = DatabaseActivityStore,
        scoring: ScoringEngine | None = None,
        rules: TriggerRuleEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._identity_factory = identity_factory
        self._activity_factory = activity_factory
        self.settings = settings
        self.transport = transport
        self.scoring = scoring or ScoringEngine()
        self.rules = rules or TriggerRuleEngine()

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    @property
    def timeout(self) -> float:
        return self.settings.automation.operation_timeout_seconds

    async def _with_timeout(self, awaitable: Awaitable[T], dependency: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise DependencyUnavailableError(dependency, timed_out=True) from e

    def current_period(self) -> str:
        return current_period(tz=self.settings.scheduler.timezone)

    # =========================================================================
    # Single user
    # =========================================================================

    async def run_for_user(
        self,
        user_id: str,
        period: str | None = None,
        trigger_reason: str = "manual",
    ) -> UserRunResult:
        """Evaluate one user and execute the resulting triggers.

        Args:
            user_id: User to evaluate.
            period: Period to evaluate. Defaults to the current period.
            trigger_reason: Why the run was started, recorded on the record.

        Returns:
            UserRunResult for the user.

        Raises:
            NotFoundError: If the user does not exist.
            ValidationError: If the period is malformed.
            DependencyUnavailableError: If a read or write timed out.
        """
        period = validate_period(period or self.current_period())
        result = UserRunResult(user_id=user_id, period=period)

        async with self._session_factory() as db:
            identity = self._identity_factory(db)
            aggregator = MetricAggregator(
                identity,
                self._activity_factory(db),
                tz=self.settings.scheduler.timezone,
            )
            records = KPIRecordService(db)

            user = await identity.get_user(user_id)
            metrics = await self._with_timeout(
                aggregator.aggregate_for(user, period), "activity store"
            )
            scores = self.scoring.score(metrics)

            record, created = await self._with_timeout(
                records.upsert_evaluation(
                    user.id,
                    period,
                    metrics,
                    scores,
                    source=KPISource.ACTIVITY,
                    submitted_by=trigger_reason,
                    comments=f"Evaluated from learning activity ({trigger_reason})",
                ),
                "persistence",
            )
            await self._with_timeout(db.commit(), "persistence")

            result.record_id = record.id
            result.created = created
            result.overall_score = scores.overall
            result.rating = scores.rating.value

            await self._process(db, identity, user, record, result)

        return result

    async def _process(
        self,
        db: AsyncSession,
        identity: IdentityDirectory,
        user: UserIdentity,
        record: KPIRecord,
        result: UserRunResult,
    ) -> None:
        """Claim a pending record and execute its triggers."""
        records = KPIRecordService(db)
        record_id = record.id

        claimed = await records.claim_for_processing(record_id)
        await db.commit()
        if not claimed:
            result.skipped = True
            return

        await db.refresh(record)
        result.processed = True

        try:
            metrics = record.raw_metrics
            scores = self.scoring.score(metrics)
            directives = self.rules.evaluate(scores.overall, scores, metrics)

            orchestrator = ActionOrchestrator(
                db, identity, self.transport, self.settings.automation
            )
            report: ExecutionReport = await orchestrator.execute(user, record, directives)

            await identity.update_standing(user.id, scores.overall)
            await records.mark_completed(record, report.triggered_actions(), report.to_dict())
            await db.commit()
        except Exception as e:
            logger.error("Trigger processing failed for record %s: %s", record_id, str(e), exc_info=True)
            await db.rollback()
            record = await records.get(record_id)
            await records.mark_failed(record, str(e))
            await db.commit()
            result.success = False
            result.error = str(e)
            return

        result.directives = len(report.directives)
        result.emails_sent = report.emails_sent
        result.emails_failed = report.emails_failed
        logger.info(
            "Processed KPI record %s for user %s: score=%d directives=%d",
            record_id,
            user.id,
            scores.overall,
            len(directives),
        )

    async def process_record(self, record_id: str) -> UserRunResult:
        """Execute triggers for an existing pending record.

        Raises:
            NotFoundError: If the record or its user does not exist.
        """
        async with self._session_factory() as db:
            records = KPIRecordService(db)
            identity = self._identity_factory(db)

            record = await records.get(record_id)
            user = await identity.get_user(record.user_id)
            result = UserRunResult(
                user_id=user.id,
                period=record.period,
                record_id=record.id,
                created=False,
                overall_score=record.overall_score,
                rating=record.rating,
            )
            await self._process(db, identity, user, record, result)
        return result

    # =========================================================================
    # Batches
    # =========================================================================

    async def _isolated(self, user_id: str, run: Awaitable[UserRunResult]) -> UserRunResult:
        try:
            return await run
        except Exception as e:
            batch_logger.error("KPI run failed", user_id=user_id, error=str(e), exc_info=True)
            return UserRunResult(user_id=user_id, success=False, error=str(e))

    async def _bounded(
        self,
        items: Iterable[str],
        run: Callable[[str], Awaitable[UserRunResult]],
        max_concurrency: int | None,
    ) -> list[UserRunResult]:
        semaphore = asyncio.Semaphore(max_concurrency or self.settings.scheduler.max_concurrency)

        async def run_one(item: str) -> UserRunResult:
            async with semaphore:
                return await self._isolated(item, run(item))

        return list(await asyncio.gather(*(run_one(item) for item in items)))

    async def run_batch(
        self,
        user_ids: Iterable[str],
        period: str | None = None,
        reason: str = "batch",
        max_concurrency: int | None = None,
    ) -> BatchResult:
        """Run the pipeline for many users with bounded parallelism.

        Args:
            user_ids: Users to evaluate.
            period: Period to evaluate. Defaults to the current period.
            reason: Trigger reason recorded on every record.
            max_concurrency: Parallel users. Defaults to the scheduler setting.

        Returns:
            BatchResult with one entry per user, failures included.
        """
        period = validate_period(period or self.current_period())
        batch = BatchResult(reason=reason, period=period)
        ids = list(dict.fromkeys(user_ids))

        batch.results = await self._bounded(
            ids,
            lambda user_id: self.run_for_user(user_id, period, reason),
            max_concurrency,
        )
        batch.finished_at = utc_now()

        batch_logger.info(
            "KPI batch finished",
            reason=reason,
            period=period,
            total=batch.total,
            succeeded=batch.succeeded,
            failed=batch.failed,
            skipped=batch.skipped,
        )
        return batch

    async def process_pending(self, limit: int = 100, max_concurrency: int | None = None) -> BatchResult:
        """Execute triggers for pending records, such as bulk imports."""
        async with self._session_factory() as db:
            pending = await KPIRecordService(db).get_pending(limit)
            record_ids = [record.id for record in pending]

        batch = BatchResult(reason="pending")
        batch.results = await self._bounded(record_ids, self.process_record, max_concurrency)
        batch.finished_at = utc_now()
        return batch

    async def list_active_user_ids(self) -> list[str]:
        async with self._session_factory() as db:
            return await self._identity_factory(db).list_active_user_ids()

    async def users_with_recent_activity(self, window_minutes: float) -> list[str]:
        async with self._session_factory() as db:
            return await self._with_timeout(
                self._activity_factory(db).users_with_recent_activity(window_minutes),
                "activity store",
            )

    # =========================================================================
    # Queries and maintenance
    # =========================================================================

    async def get_pending_triggers(self, limit: int = 100) -> list[dict[str, Any]]:
        """Get active records still waiting for trigger execution."""
        async with self._session_factory() as db:
            return [r.to_dict() for r in await KPIRecordService(db).get_pending(limit)]

    async def get_trigger_history(self, user_id: str, limit: int = 10) -> list[dict[str, Any]]:
        """Get a user's records, superseded ones included."""
        async with self._session_factory() as db:
            return [r.to_dict() for r in await KPIRecordService(db).get_history(user_id, limit)]

    async def get_automation_statistics(self) -> dict[str, Any]:
        async with self._session_factory() as db:
            return await KPIRecordService(db).get_statistics()

    async def supersede_record(
        self,
        record_id: str,
        actor: str = "system",
        reason: str | None = None,
    ) -> dict[str, Any]:
        async with self._session_factory() as db:
            record = await KPIRecordService(db).supersede(record_id, actor, reason)
            await db.commit()
            return record.to_dict()

    async def mark_overdue_trainings(self) -> int:
        async with self._session_factory() as db:
            count = await KPIRecordService(db).mark_overdue_trainings()
            await db.commit()
            return count

    async def retry_failed_emails(self, limit: int = 50) -> dict[str, int]:
        async with self._session_factory() as db:
            orchestrator = ActionOrchestrator(
                db, self._identity_factory(db), self.transport, self.settings.automation
            )
            return await orchestrator.retry_failed_emails(limit)

    async def import_rows(
        self,
        rows: Iterable[dict[str, Any]],
        period_override: str | None = None,
        submitted_by: str | None = None,
        preview: bool = False,
    ) -> ImportReport:
        """Import spreadsheet rows as pending records.

        Call process_pending() afterwards to execute their triggers.
        """
        async with self._session_factory() as db:
            service = BulkImportService(db, self._identity_factory(db), self.scoring)
            return await service.import_rows(
                rows,
                period_override=period_override,
                submitted_by=submitted_by,
                preview=preview,
            )
