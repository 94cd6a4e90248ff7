# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""KPI record persistence.

Every writer goes through KPIRecordService.upsert_evaluation(), which
updates the active record for (user, period) in place or creates one.
The partial unique index on active records backs this up: a racing
insert that loses falls back to the update path.

automation_status is the idempotency guard. claim_for_processing() moves
a record from pending to processing with a single conditional UPDATE, so
only one runner can win the claim.

The service flushes but never commits. Callers own the transaction.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from kpisynapse.core.kpi.exceptions import NotFoundError, ValidationError
from kpisynapse.core.kpi.period import validate_period
from kpisynapse.core.kpi.types import AutomationStatus, RawMetrics, ScoreResult
from kpisynapse.infrastructure.database.models import (
    AuditSchedule,
    EmailDispatchLog,
    KPIRecord,
    KPISource,
    TrainingAssignment,
    TrainingStatus,
)
from kpisynapse.utils.datetime import utc_now

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class KPIRecordService:
    """Service for KPI record lifecycle and automation statistics."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def get(self, record_id: str) -> KPIRecord:
        """Get a record by id.

        Raises:
            NotFoundError: If the record does not exist.
        """
        record = await self._db.get(KPIRecord, record_id)
        if record is None:
            raise NotFoundError("KPIRecord", record_id)
        return record

    async def find_active(self, user_id: str, period: str) -> KPIRecord | None:
        """Find the active record for a user and period."""
        result = await self._db.execute(
            select(KPIRecord).where(
                KPIRecord.user_id == user_id,
                KPIRecord.period == period,
                KPIRecord.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    def _apply_evaluation(
        self,
        record: KPIRecord,
        metrics: RawMetrics,
        scores: ScoreResult,
        source: str,
        submitted_by: str | None,
        comments: str | None,
    ) -> None:
        record.metrics = metrics.to_dict()
        record.scores = scores.to_dict()
        record.overall_score = scores.overall
        record.rating = scores.rating.value
        record.automation_status = AutomationStatus.PENDING.value
        record.source = source
        record.submitted_by = submitted_by or record.submitted_by
        record.comments = comments
        record.last_error = None

    async def upsert_evaluation(
        self,
        user_id: str,
        period: str,
        metrics: RawMetrics,
        scores: ScoreResult,
        source: str = KPISource.ACTIVITY,
        submitted_by: str | None = None,
        comments: str | None = None,
    ) -> tuple[KPIRecord, bool]:
        """Write an evaluation onto the active record for (user, period).

        The existing active record is updated in place and reset to
        pending. Without one, a new pending record is created.

        Args:
            user_id: Evaluated user.
            period: Period in YYYY-MM form.
            metrics: Canonical metric inputs.
            scores: Scoring engine output for the metrics.
            source: Where the metrics came from.
            submitted_by: Actor submitting the evaluation.
            comments: Free-text comment stored on the record.

        Returns:
            Tuple of the record and whether it was created.

        Raises:
            ValidationError: If the period is malformed.
        """
        validate_period(period)

        record = await self.find_active(user_id, period)
        if record is not None:
            self._apply_evaluation(record, metrics, scores, source, submitted_by, comments)
            record.append_audit(
                "re_evaluated",
                submitted_by or SYSTEM_ACTOR,
                {"overall_score": scores.overall, "rating": scores.rating.value, "source": source},
            )
            await self._db.flush()
            logger.info(
                "Updated KPI record %s for user %s period %s: %d (%s)",
                record.id,
                user_id,
                period,
                scores.overall,
                scores.rating.value,
            )
            return record, False

        record = KPIRecord(user_id=user_id, period=period, is_active=True, audit_trail=[])
        self._apply_evaluation(record, metrics, scores, source, submitted_by, comments)
        record.append_audit(
            "created",
            submitted_by or SYSTEM_ACTOR,
            {"overall_score": scores.overall, "rating": scores.rating.value, "source": source},
        )

        try:
            async with self._db.begin_nested():
                self._db.add(record)
        except IntegrityError:
            # Another writer created the active record first
            logger.info("Concurrent insert for user %s period %s, updating instead", user_id, period)
            existing = await self.find_active(user_id, period)
            if existing is None:
                raise
            self._apply_evaluation(existing, metrics, scores, source, submitted_by, comments)
            existing.append_audit("re_evaluated", submitted_by or SYSTEM_ACTOR, {"source": source})
            await self._db.flush()
            return existing, False

        logger.info(
            "Created KPI record %s for user %s period %s: %d (%s)",
            record.id,
            user_id,
            period,
            scores.overall,
            scores.rating.value,
        )
        return record, True

    async def claim_for_processing(self, record_id: str) -> bool:
        """Move a pending active record to processing.

        Returns:
            True if this caller won the claim, False if the record was
            not pending (already claimed, completed or superseded).
        """
        result = await self._db.execute(
            update(KPIRecord)
            .where(
                KPIRecord.id == record_id,
                KPIRecord.automation_status == AutomationStatus.PENDING.value,
                KPIRecord.is_active.is_(True),
            )
            .values(automation_status=AutomationStatus.PROCESSING.value, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        claimed = result.rowcount == 1
        if not claimed:
            logger.debug("KPI record %s not pending, skipping", record_id)
        return claimed

    async def mark_completed(
        self,
        record: KPIRecord,
        triggered_actions: list[dict[str, Any]],
        summary: dict[str, Any] | None = None,
    ) -> None:
        record.automation_status = AutomationStatus.COMPLETED.value
        record.triggered_actions = triggered_actions
        record.processed_at = utc_now()
        record.last_error = None
        record.append_audit("automation_completed", SYSTEM_ACTOR, summary or {})
        await self._db.flush()

    async def mark_failed(self, record: KPIRecord, error: str) -> None:
        """Mark a record's automation as failed with the cause."""
        record.automation_status = AutomationStatus.FAILED.value
        record.processed_at = utc_now()
        record.last_error = error
        record.append_audit("automation_failed", SYSTEM_ACTOR, {"error": error})
        await self._db.flush()

    async def supersede(
        self,
        record_id: str,
        actor: str = SYSTEM_ACTOR,
        reason: str | None = None,
    ) -> KPIRecord:
        """Mark an active record inactive so a fresh one can be created.

        Raises:
            NotFoundError: If the record does not exist.
            ValidationError: If the record is already inactive.
        """
        record = await self.get(record_id)
        if not record.is_active:
            raise ValidationError(f"KPI record {record_id} is already superseded", field="record_id")

        record.is_active = False
        record.append_audit("superseded", actor, {"reason": reason} if reason else {})
        await self._db.flush()
        logger.info("Superseded KPI record %s (%s %s)", record.id, record.user_id, record.period)
        return record

    async def get_pending(self, limit: int = 100) -> list[KPIRecord]:
        """Get active pending records, oldest first."""
        result = await self._db.execute(
            select(KPIRecord)
            .where(
                KPIRecord.automation_status == AutomationStatus.PENDING.value,
                KPIRecord.is_active.is_(True),
            )
            .order_by(KPIRecord.created_at, KPIRecord.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_history(self, user_id: str, limit: int = 10) -> list[KPIRecord]:
        """Get active and superseded records of a user, newest period first."""
        result = await self._db.execute(
            select(KPIRecord)
            .where(KPIRecord.user_id == user_id)
            .order_by(
                KPIRecord.period.desc(),
                KPIRecord.is_active.desc(),
                KPIRecord.created_at.desc(),
            )
            .limit(limit)
        )
        return list(result.scalars().all())

    async def _count_by(self, column: Any, *conditions: Any) -> dict[str, int]:
        query = select(column, func.count()).group_by(column)
        if conditions:
            query = query.where(*conditions)
        result = await self._db.execute(query)
        return {str(status): count for status, count in result.all()}

    async def get_statistics(self) -> dict[str, Any]:
        """Count records by automation status and linked rows by status."""
        kpi_counts = await self._count_by(
            KPIRecord.automation_status, KPIRecord.is_active.is_(True)
        )
        return {
            "kpi_records": {
                status.value: kpi_counts.get(status.value, 0) for status in AutomationStatus
            },
            "training_assignments": await self._count_by(TrainingAssignment.status),
            "audit_schedules": await self._count_by(AuditSchedule.status),
            "email_logs": await self._count_by(EmailDispatchLog.status),
        }

    async def mark_overdue_trainings(self, now: datetime | None = None) -> int:
        """Flip assigned trainings past their due date to overdue.

        Returns:
            Number of assignments updated.
        """
        result = await self._db.execute(
            update(TrainingAssignment)
            .where(
                TrainingAssignment.status == TrainingStatus.ASSIGNED.value,
                TrainingAssignment.is_active.is_(True),
                TrainingAssignment.due_date < (now or utc_now()),
            )
            .values(status=TrainingStatus.OVERDUE.value, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount or 0
        if count:
            logger.info("Marked %d training assignments overdue", count)
        return count
