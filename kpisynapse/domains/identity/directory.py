# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""User identity lookups for KPI automation.

The KPI pipeline consumes identity only through IdentityDirectory:
- resolve a user by id, employee code, email or name
- list the users a batch run should evaluate
- resolve directive recipient roles to concrete email addresses
- record the user's standing after an evaluation

DatabaseIdentityDirectory reads the ``users`` table. Coordinators,
managers, compliance officers and department heads are active admins
of fixed departments.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from kpisynapse.core.kpi.exceptions import NotFoundError
from kpisynapse.core.kpi.types import RecipientRole
from kpisynapse.infrastructure.database.models import User, UserRole, UserStanding

logger = logging.getLogger(__name__)

ROLE_DEPARTMENTS: dict[RecipientRole, str] = {
    RecipientRole.COORDINATOR: "Coordination",
    RecipientRole.MANAGER: "Management",
    RecipientRole.COMPLIANCE: "Compliance",
    RecipientRole.DEPARTMENT_HEAD: "HOD",
}


@dataclass(frozen=True)
class UserIdentity:
    """The parts of a user the KPI pipeline needs."""

    id: str
    name: str
    email: str
    employee_code: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class Recipient:
    """A concrete email recipient for one role."""

    user_id: str
    name: str
    email: str
    role: RecipientRole


def standing_for(score: int) -> UserStanding:
    """Map an overall score to the user's standing."""
    if score < 50:
        return UserStanding.AUDITED
    if score < 70:
        return UserStanding.WARNING
    return UserStanding.ACTIVE


def dedupe_recipients(recipients: Iterable[Recipient]) -> list[Recipient]:
    """Drop recipients whose email was already seen, ignoring case.

    The first occurrence wins, so callers should pass recipients in
    role order.
    """
    seen: set[str] = set()
    unique: list[Recipient] = []
    for recipient in recipients:
        key = recipient.email.strip().lower()
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(recipient)
    return unique


class IdentityDirectory(ABC):
    """Identity collaborator used by the KPI pipeline."""

    @abstractmethod
    async def get_user(self, user_id: str) -> UserIdentity:
        """Get a user by id.

        Raises:
            NotFoundError: If the user does not exist.
        """

    @abstractmethod
    async def find_user(
        self,
        employee_code: str | None = None,
        email: str | None = None,
        name: str | None = None,
    ) -> UserIdentity | None:
        """Find a user by employee code, then email, then name."""

    @abstractmethod
    async def list_active_user_ids(self) -> list[str]:
        """List ids of active field executives."""

    @abstractmethod
    async def resolve_recipients(
        self,
        user: UserIdentity,
        roles: Iterable[RecipientRole],
    ) -> list[Recipient]:
        """Resolve roles to recipients, deduplicated by email."""

    @abstractmethod
    async def update_standing(self, user_id: str, score: int) -> None:
        """Record the latest score and the standing it implies."""


class DatabaseIdentityDirectory(IdentityDirectory):
    """IdentityDirectory backed by the ``users`` table.

    Writes are flushed, never committed: the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @staticmethod
    def _identity(user: User) -> UserIdentity:
        return UserIdentity(
            id=user.id,
            name=user.name,
            email=user.email,
            employee_code=user.employee_code,
            is_active=user.is_active,
        )

    async def get_user(self, user_id: str) -> UserIdentity:
        user = await self._session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return self._identity(user)

    async def find_user(
        self,
        employee_code: str | None = None,
        email: str | None = None,
        name: str | None = None,
    ) -> UserIdentity | None:
        lookups = []
        if employee_code and employee_code.strip():
            lookups.append(User.employee_code == employee_code.strip())
        if email and email.strip():
            lookups.append(func.lower(User.email) == email.strip().lower())
        if name and name.strip():
            lookups.append(func.lower(User.name) == name.strip().lower())

        for condition in lookups:
            result = await self._session.execute(select(User).where(condition).limit(1))
            user = result.scalar_one_or_none()
            if user is not None:
                return self._identity(user)
        return None

    async def list_active_user_ids(self) -> list[str]:
        result = await self._session.execute(
            select(User.id)
            .where(User.is_active.is_(True), User.role == UserRole.USER.value)
            .order_by(User.id)
        )
        return list(result.scalars().all())

    async def _admins_of(self, department: str) -> list[User]:
        result = await self._session.execute(
            select(User)
            .where(
                User.is_active.is_(True),
                User.role == UserRole.ADMIN.value,
                User.department == department,
            )
            .order_by(User.email)
        )
        return list(result.scalars().all())

    async def resolve_recipients(
        self,
        user: UserIdentity,
        roles: Iterable[RecipientRole],
    ) -> list[Recipient]:
        wanted = set(roles)
        recipients: list[Recipient] = []

        for role in RecipientRole:
            if role not in wanted:
                continue
            if role == RecipientRole.SUBJECT:
                recipients.append(Recipient(user.id, user.name, user.email, role))
                continue
            for admin in await self._admins_of(ROLE_DEPARTMENTS[role]):
                recipients.append(Recipient(admin.id, admin.name, admin.email, role))

        unique = dedupe_recipients(recipients)
        if not unique:
            logger.warning(
                "No recipients resolved for user %s roles %s",
                user.id,
                sorted(role.value for role in wanted),
            )
        return unique

    async def update_standing(self, user_id: str, score: int) -> None:
        user = await self._session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        user.kpi_score = score
        user.standing = standing_for(score).value
        await self._session.flush()
