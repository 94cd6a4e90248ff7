# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""KPI record model.

At most one active record exists per (user_id, period). The partial
unique index enforces this in the database; superseded records are kept
with ``is_active = False`` and never deleted.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from kpisynapse.core.kpi.types import AutomationStatus, RawMetrics
from kpisynapse.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from kpisynapse.utils.datetime import format_iso, utc_now


class KPISource:
    """Where a record's metrics came from."""

    ACTIVITY = "activity"
    BULK_IMPORT = "bulk_import"
    MANUAL = "manual"


class KPIRecord(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """KPI evaluation of one user for one period."""

    __tablename__ = "kpi_records"
    __table_args__ = (
        Index(
            "uq_kpi_records_active_user_period",
            "user_id",
            "period",
            unique=True,
            postgresql_where=text("is_active = true"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("ix_kpi_records_status_active", "automation_status", "is_active"),
    )

    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    period: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    metrics: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
    scores: Mapped[dict[str, Any]] = mapped_column(nullable=False, default=dict)
    overall_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rating: Mapped[str] = mapped_column(String(30), nullable=False)
    triggered_actions: Mapped[list[dict[str, Any]]] = mapped_column(
        nullable=False, default=list
    )
    automation_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AutomationStatus.PENDING.value
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    source: Mapped[str] = mapped_column(String(20), nullable=False, default=KPISource.ACTIVITY)
    submitted_by: Mapped[str | None] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    audit_trail: Mapped[list[dict[str, Any]]] = mapped_column(nullable=False, default=list)
    comments: Mapped[str | None] = mapped_column(Text)
    last_error: Mapped[str | None] = mapped_column(Text)

    @property
    def raw_metrics(self) -> RawMetrics:
        """Stored metric inputs as canonical metrics."""
        return RawMetrics.from_mapping(self.metrics or {})

    def append_audit(
        self,
        action: str,
        actor: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        """Append an audit-trail entry.

        The list is replaced rather than mutated so the ORM sees the change.
        """
        entry = {
            "action": action,
            "actor": actor,
            "timestamp": utc_now().isoformat(),
            "detail": detail or {},
        }
        self.audit_trail = [*(self.audit_trail or []), entry]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "period": self.period,
            "metrics": self.metrics,
            "scores": self.scores,
            "overall_score": self.overall_score,
            "rating": self.rating,
            "triggered_actions": self.triggered_actions,
            "automation_status": self.automation_status,
            "processed_at": format_iso(self.processed_at),
            "source": self.source,
            "submitted_by": self.submitted_by,
            "is_active": self.is_active,
            "audit_trail": self.audit_trail,
            "created_at": format_iso(self.created_at),
            "updated_at": format_iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<KPIRecord {self.user_id} {self.period} {self.automation_status}>"
