# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Records created when trigger directives execute.

- TrainingAssignment: assigned -> in_progress -> completed | overdue
- AuditSchedule: scheduled -> in_progress -> completed | cancelled
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from kpisynapse.core.kpi.types import Priority
from kpisynapse.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from kpisynapse.utils.datetime import ensure_utc, utc_now


class TrainingStatus(str, Enum):
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"


class AuditStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AssignedBy(str, Enum):
    """Origin of a training assignment or audit schedule."""

    KPI_TRIGGER = "kpi_trigger"
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    SYSTEM = "system"


class TrainingAssignment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Training assigned to a user."""

    __tablename__ = "training_assignments"

    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    kpi_record_id: Mapped[str | None] = mapped_column(String(36), index=True)
    training_type: Mapped[str] = mapped_column(String(30), nullable=False)
    assigned_by: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AssignedBy.KPI_TRIGGER.value
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TrainingStatus.ASSIGNED.value, index=True
    )
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default=Priority.MEDIUM.value)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    completion_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    score: Mapped[float | None] = mapped_column(Float)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def is_past_due(self, now: datetime | None = None) -> bool:
        """Check whether an open assignment has passed its due date."""
        if self.status != TrainingStatus.ASSIGNED.value:
            return False
        return (now or utc_now()) > ensure_utc(self.due_date)

    def mark_completed(self, score: float | None = None) -> None:
        self.status = TrainingStatus.COMPLETED.value
        self.completion_date = utc_now()
        if score is not None:
            self.score = score


class AuditSchedule(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Audit scheduled for a user."""

    __tablename__ = "audit_schedules"

    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    kpi_record_id: Mapped[str | None] = mapped_column(String(36), index=True)
    audit_type: Mapped[str] = mapped_column(String(30), nullable=False)
    scheduled_by: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AssignedBy.KPI_TRIGGER.value
    )
    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    scheduled_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AuditStatus.SCHEDULED.value, index=True
    )
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default=Priority.MEDIUM.value)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    audit_scope: Mapped[str | None] = mapped_column(Text)
    audit_method: Mapped[str | None] = mapped_column(String(200))
    completed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    findings: Mapped[str | None] = mapped_column(Text)
