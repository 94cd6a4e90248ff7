# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Process wiring for the KPI engine.

build_pipeline() assembles the pipeline from settings and a session
factory. lifespan() initializes logging and the database, starts the
scheduler and tears everything down on exit.

Example:
    async with lifespan() as app:
        await app.scheduler.run_for_user(user_id)
        status = await app.scheduler.get_status()
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kpisynapse.core.config import Settings, get_settings
from kpisynapse.domains.kpi.pipeline import KPIPipeline
from kpisynapse.infrastructure.background.scheduler import KPIScheduler
from kpisynapse.infrastructure.database.connection import (
    check_database_connection,
    close_database,
    init_database,
)
from kpisynapse.infrastructure.notifications.channels import BaseChannel, EmailChannel
from kpisynapse.utils.logging import setup_logging

logger = logging.getLogger(__name__)


@dataclass
class KPIApp:
    """Components owned by one running process."""

    settings: Settings
    sessionmaker: async_sessionmaker[AsyncSession]
    pipeline: KPIPipeline
    scheduler: KPIScheduler


def build_pipeline(
    settings: Settings,
    sessionmaker: async_sessionmaker[AsyncSession],
    transport: BaseChannel | None = None,
) -> KPIPipeline:
    """Build the pipeline with the SMTP email channel unless one is given."""
    return KPIPipeline(
        sessionmaker,
        settings,
        transport or EmailChannel(settings.smtp),
    )


@asynccontextmanager
async def lifespan(
    settings: Settings | None = None,
    transport: BaseChannel | None = None,
    start_scheduler: bool = True,
) -> AsyncIterator[KPIApp]:
    """Run the KPI engine for the duration of the context.

    Args:
        settings: Settings to use. Defaults to get_settings().
        transport: Email channel override.
        start_scheduler: Register and start the cadences.

    Yields:
        The wired KPIApp.
    """
    settings = settings or get_settings()
    setup_logging(settings)
    logger.info("Starting KPI engine (environment: %s)", settings.environment)

    sessionmaker = await init_database(settings)
    if not await check_database_connection(sessionmaker):
        logger.warning("Database not reachable at startup; runs will fail until it is")

    pipeline = build_pipeline(settings, sessionmaker, transport)
    scheduler = KPIScheduler(pipeline, settings.scheduler)
    if start_scheduler:
        await scheduler.start()

    try:
        yield KPIApp(
            settings=settings,
            sessionmaker=sessionmaker,
            pipeline=pipeline,
            scheduler=scheduler,
        )
    finally:
        await scheduler.stop()
        await close_database()
        logger.info("KPI engine stopped")
