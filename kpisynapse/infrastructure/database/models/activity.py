# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Learning activity models read by the metric aggregator."""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import Boolean, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from kpisynapse.infrastructure.database.models.base import Base, UUIDPrimaryKeyMixin
from kpisynapse.utils.datetime import utc_now


class ModuleStatus(str, Enum):
    """Enrolment status of a learning module."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class QuizAttempt(UUIDPrimaryKeyMixin, Base):
    """One quiz attempt.

    ``violations`` holds proctoring events as ``{"type": ..., "severity": ...}``.
    """

    __tablename__ = "quiz_attempts"

    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    module_id: Mapped[str | None] = mapped_column(String(36))
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, index=True
    )
    time_spent_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    violations: Mapped[list[dict[str, Any]]] = mapped_column(default=list)


class UserProgress(UUIDPrimaryKeyMixin, Base):
    """Per-module progress of a user."""

    __tablename__ = "user_progress"

    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    module_id: Mapped[str] = mapped_column(String(36), nullable=False)
    last_accessed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, index=True
    )
    best_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_watch_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    video_watched: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class UserModule(UUIDPrimaryKeyMixin, Base):
    """Module enrolment of a user."""

    __tablename__ = "user_modules"

    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    module_id: Mapped[str] = mapped_column(String(36), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ModuleStatus.NOT_STARTED.value
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now, index=True
    )
