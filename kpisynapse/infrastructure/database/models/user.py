# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User identity model.

Field executives have role ``user``. Coordinators, managers, compliance
officers and department heads are ``admin`` users told apart by
department.
"""

from enum import Enum

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from kpisynapse.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)


class UserRole(str, Enum):
    """Account role."""

    USER = "user"
    ADMIN = "admin"


class UserStanding(str, Enum):
    """Performance standing derived from the latest KPI score."""

    ACTIVE = "active"
    WARNING = "warning"
    AUDITED = "audited"


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Platform user."""

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    employee_code: Mapped[str | None] = mapped_column(String(50), unique=True, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.USER.value)
    department: Mapped[str | None] = mapped_column(String(50), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    standing: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UserStanding.ACTIVE.value
    )
    kpi_score: Mapped[int | None] = mapped_column(Integer)

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email}>"
