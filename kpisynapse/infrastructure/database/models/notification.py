# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-app notifications and the email dispatch log."""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from kpisynapse.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from kpisynapse.utils.datetime import utc_now


class NotificationPriority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class EmailStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    DELIVERED = "delivered"


class EmailTemplate(str, Enum):
    """Email template kinds."""

    TRAINING = "training"
    AUDIT = "audit"
    WARNING = "warning"
    REWARD = "reward"
    KPI_SCORE = "kpi_score"


class Notification(UUIDPrimaryKeyMixin, Base):
    """In-app notification shown to a user."""

    __tablename__ = "notifications"

    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    notification_type: Mapped[str] = mapped_column(String(50), nullable=False)
    priority: Mapped[str] = mapped_column(
        String(10), nullable=False, default=NotificationPriority.NORMAL.value
    )
    sender: Mapped[str] = mapped_column(String(100), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


class EmailDispatchLog(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One email send attempt sequence to one recipient.

    Written with status ``pending`` before the first send attempt.
    """

    __tablename__ = "email_dispatch_logs"

    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_role: Mapped[str] = mapped_column(String(30), nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    template_type: Mapped[str] = mapped_column(String(30), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    html_content: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EmailStatus.PENDING.value, index=True
    )
    kpi_record_id: Mapped[str | None] = mapped_column(String(36), index=True)
    training_assignment_id: Mapped[str | None] = mapped_column(String(36))
    audit_schedule_id: Mapped[str | None] = mapped_column(String(36))
    error_message: Mapped[str | None] = mapped_column(Text)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def mark_sent(self) -> None:
        self.status = EmailStatus.SENT.value
        self.sent_at = utc_now()
        self.error_message = None

    def mark_failed(self, error: str) -> None:
        """Record a failed attempt and consume one retry."""
        self.status = EmailStatus.FAILED.value
        self.error_message = error
        self.retry_count = (self.retry_count or 0) + 1

    @property
    def can_retry(self) -> bool:
        return self.status == EmailStatus.FAILED.value and self.retry_count < self.max_retries
