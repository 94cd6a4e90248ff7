# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base utilities for Dramatiq tasks.

Thread-Local Event Loop Management:
    Dramatiq workers use multiple threads (--threads N) to process tasks
    concurrently. SQLAlchemy async engines and asyncpg connections are
    bound to specific event loops and cannot be used across different loops.

    Each worker thread keeps one persistent event loop and one pipeline
    whose engine is bound to that loop. When a new loop is created the
    thread's pipeline is rebuilt.
"""

import asyncio
import logging
import threading
from typing import Any, Coroutine, TypeVar

from kpisynapse.core.config import get_settings
from kpisynapse.domains.kpi.pipeline import KPIPipeline
from kpisynapse.infrastructure.background.scheduler import KPIScheduler
from kpisynapse.infrastructure.database.connection import (
    create_database_engine,
    create_sessionmaker,
)
from kpisynapse.infrastructure.notifications.channels import EmailChannel

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Thread-local storage for event loops, pipelines and schedulers
_thread_local = threading.local()


def _get_thread_event_loop() -> asyncio.AbstractEventLoop:
    """Get or create a persistent event loop for the current thread.

    When a new loop is created, the thread's cached pipeline is dropped
    so its engine is rebuilt on the new loop.
    """
    loop = getattr(_thread_local, "event_loop", None)

    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.event_loop = loop
        _thread_local.pipeline = None
        _thread_local.scheduler = None

        logger.debug(
            "Created new event loop for thread %s",
            threading.current_thread().name,
        )

    return loop


def get_worker_pipeline() -> KPIPipeline:
    """Get the pipeline bound to the current worker thread's loop."""
    pipeline = getattr(_thread_local, "pipeline", None)
    if pipeline is None:
        settings = get_settings()
        engine = create_database_engine(settings.database)
        pipeline = KPIPipeline(
            create_sessionmaker(engine),
            settings,
            EmailChannel(settings.smtp),
        )
        _thread_local.pipeline = pipeline
    return pipeline


def get_worker_scheduler() -> KPIScheduler:
    """Get the scheduler owned by the current worker thread.

    Cadence runs in one thread share its run state, so an overlapping
    start of the same cadence is rejected. The scheduler follows the
    thread's pipeline and is rebuilt with it.
    """
    pipeline = get_worker_pipeline()
    scheduler = getattr(_thread_local, "scheduler", None)
    if scheduler is None or scheduler.pipeline is not pipeline:
        scheduler = KPIScheduler(pipeline, pipeline.settings.scheduler)
        _thread_local.scheduler = scheduler
    return scheduler


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run async coroutine in sync Dramatiq worker context.

    Args:
        coro: Coroutine to run.

    Returns:
        Result of coroutine.

    Example:
        @dramatiq.actor
        def my_task(user_id: str):
            async def _process():
                return await get_worker_pipeline().run_for_user(user_id)
            return run_async(_process())
    """
    loop = _get_thread_event_loop()
    return loop.run_until_complete(coro)
