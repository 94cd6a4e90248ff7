# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

Database-backed tests run against a temporary SQLite file through
aiosqlite. The email transport is a recording fake, so no test talks
to SMTP or Redis.
"""

import os

# Dramatiq actors must bind to the StubBroker, set before any task import
os.environ.setdefault("DRAMATIQ_TEST_MODE", "true")

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from kpisynapse.core.config.settings import (
    AutomationSettings,
    DatabaseSettings,
    SchedulerSettings,
    Settings,
)
from kpisynapse.domains.kpi.pipeline import KPIPipeline
from kpisynapse.infrastructure.database.connection import (
    create_database_engine,
    create_sessionmaker,
    create_tables,
)
from kpisynapse.infrastructure.database.models import User, UserRole
from kpisynapse.infrastructure.notifications.channels import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    NotificationPayload,
)


# =============================================================================
# Fakes
# =============================================================================


class FakeTransport(BaseChannel):
    """Email channel that records payloads instead of sending them.

    Attributes:
        sent: Payloads accepted by the fake, in send order.
        fail_for: Addresses whose sends report a failure.
        raise_for: Addresses whose sends raise.
        delay_for: Addresses whose sends sleep this many seconds first.
    """

    def __init__(self) -> None:
        super().__init__()
        self.sent: list[NotificationPayload] = []
        self.attempts: list[str] = []
        self.fail_for: set[str] = set()
        self.raise_for: set[str] = set()
        self.delay_for: dict[str, float] = {}

    @property
    def channel_type(self) -> ChannelType:
        return ChannelType.EMAIL

    async def send(self, payload: NotificationPayload) -> ChannelResult:
        email = payload.recipient_email or ""
        self.attempts.append(email)

        if email in self.delay_for:
            await asyncio.sleep(self.delay_for[email])
        if email in self.raise_for:
            raise ConnectionError(f"connection refused for {email}")
        if email in self.fail_for:
            return self.create_failure_result(f"mailbox unavailable: {email}")

        self.sent.append(payload)
        return self.create_success_result(message_id=f"<{len(self.sent)}@test>")

    def subjects_for(self, email: str) -> list[str]:
        return [p.title for p in self.sent if p.recipient_email == email]


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# =============================================================================
# Settings and database
# =============================================================================


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a temporary SQLite database."""
    return Settings(
        environment="development",
        database=DatabaseSettings(url_override=f"sqlite+aiosqlite:///{tmp_path / 'kpi.db'}"),
        scheduler=SchedulerSettings(enabled=False, timezone="UTC", max_concurrency=1),
        automation=AutomationSettings(operation_timeout_seconds=5.0),
    )


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncIterator[AsyncEngine]:
    """Engine with every table created."""
    engine = create_database_engine(settings.database)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_sessionmaker(engine)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def pipeline(
    sessionmaker: async_sessionmaker[AsyncSession],
    settings: Settings,
    transport: FakeTransport,
) -> KPIPipeline:
    return KPIPipeline(sessionmaker, settings, transport)


# =============================================================================
# Seed data
# =============================================================================


ADMIN_EMAILS: dict[str, str] = {
    "Coordination": "coordinator@example.com",
    "Management": "manager@example.com",
    "Compliance": "compliance@example.com",
    "HOD": "hod@example.com",
}


@pytest_asyncio.fixture
async def seeded(sessionmaker: async_sessionmaker[AsyncSession]) -> dict[str, Any]:
    """Create one field executive, one inactive user and one admin per department.

    Returns:
        Ids and emails of the seeded users.
    """
    subject = User(
        name="Asha Rao",
        email="asha@example.com",
        employee_code="FE001",
        role=UserRole.USER.value,
    )
    inactive = User(
        name="Vikram Shah",
        email="vikram@example.com",
        employee_code="FE002",
        role=UserRole.USER.value,
        is_active=False,
    )
    admins = [
        User(
            name=f"{department} Admin",
            email=email,
            role=UserRole.ADMIN.value,
            department=department,
        )
        for department, email in ADMIN_EMAILS.items()
    ]

    async with sessionmaker() as db:
        db.add_all([subject, inactive, *admins])
        await db.commit()

    return {
        "user_id": subject.id,
        "user_email": subject.email,
        "inactive_id": inactive.id,
        "admin_emails": dict(ADMIN_EMAILS),
    }


@pytest.fixture
def sample_period() -> str:
    """Provide a fixed evaluation period."""
    return "2025-10"
