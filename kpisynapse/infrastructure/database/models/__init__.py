# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models for KPISynapse.

Importing this package registers every table on Base.metadata.
"""

from kpisynapse.infrastructure.database.models.actions import (
    AssignedBy,
    AuditSchedule,
    AuditStatus,
    TrainingAssignment,
    TrainingStatus,
)
from kpisynapse.infrastructure.database.models.activity import (
    ModuleStatus,
    QuizAttempt,
    UserModule,
    UserProgress,
)
from kpisynapse.infrastructure.database.models.base import Base, TimestampMixin, new_id
from kpisynapse.infrastructure.database.models.kpi import KPIRecord, KPISource
from kpisynapse.infrastructure.database.models.notification import (
    EmailDispatchLog,
    EmailStatus,
    EmailTemplate,
    Notification,
    NotificationPriority,
)
from kpisynapse.infrastructure.database.models.user import User, UserRole, UserStanding

__all__ = [
    "Base",
    "TimestampMixin",
    "new_id",
    # Identity
    "User",
    "UserRole",
    "UserStanding",
    # Activity
    "ModuleStatus",
    "QuizAttempt",
    "UserModule",
    "UserProgress",
    # KPI
    "KPIRecord",
    "KPISource",
    # Actions
    "AssignedBy",
    "AuditSchedule",
    "AuditStatus",
    "TrainingAssignment",
    "TrainingStatus",
    # Notifications
    "EmailDispatchLog",
    "EmailStatus",
    "EmailTemplate",
    "Notification",
    "NotificationPriority",
]
