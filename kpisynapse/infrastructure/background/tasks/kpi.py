# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""KPI actors for Dramatiq workers.

Actors:
    - process_user_kpi: Evaluate one user and execute the triggers
    - run_kpi_cadence: Run a scheduler cadence inside the worker
    - process_pending_kpi_records: Execute triggers of pending records
    - retry_failed_kpi_emails: Re-send failed emails with retries left

Cadence runs share one KPIScheduler per worker thread, so the
concurrent-run guard only covers runs inside the same worker thread.
"""

import logging
from typing import Any

import dramatiq

from kpisynapse.core.kpi.exceptions import ConcurrentRunRejectedError, NotFoundError
from kpisynapse.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from kpisynapse.infrastructure.background.scheduler import Cadence
from kpisynapse.infrastructure.background.tasks.base import (
    get_worker_pipeline,
    get_worker_scheduler,
    run_async,
)

setup_dramatiq()

logger = logging.getLogger(__name__)


@dramatiq.actor(
    queue_name=Queues.KPI,
    max_retries=3,
    time_limit=300000,  # 5 minutes
    priority=Priority.HIGH,
)
def process_user_kpi(user_id: str, trigger_reason: str = "event") -> dict[str, Any]:
    """Evaluate one user for the current period.

    Args:
        user_id: User to evaluate.
        trigger_reason: Why the run was requested.

    Returns:
        The user's run result.
    """
    logger.info("Processing KPI for user %s (%s)", user_id, trigger_reason)

    async def _execute() -> dict[str, Any]:
        result = await get_worker_pipeline().run_for_user(
            user_id, trigger_reason=trigger_reason
        )
        return result.to_dict()

    try:
        return run_async(_execute())
    except NotFoundError as e:
        # Retrying cannot help for an unknown user
        logger.warning("KPI run skipped: %s", e.message)
        return {"status": "failed", "error": e.message}


@dramatiq.actor(
    queue_name=Queues.KPI,
    max_retries=1,
    time_limit=3600000,  # 1 hour
    priority=Priority.NORMAL,
)
def run_kpi_cadence(cadence: str) -> dict[str, Any]:
    """Run a KPI cadence (daily, realtime or monthly) in the worker.

    Returns:
        Batch summary, or the rejection reason.
    """
    logger.info("KPI cadence %s triggered", cadence)

    async def _execute() -> dict[str, Any]:
        batch = await get_worker_scheduler().run_cadence(Cadence(cadence))
        return batch.to_dict()

    try:
        result = run_async(_execute())
        logger.info(
            "KPI cadence %s completed: %d users, %d failed",
            cadence,
            result.get("total", 0),
            result.get("failed", 0),
        )
        return result
    except ConcurrentRunRejectedError as e:
        logger.warning("KPI cadence %s rejected: %s", cadence, e.message)
        return {"status": "rejected", "error": e.message}


@dramatiq.actor(
    queue_name=Queues.KPI,
    max_retries=1,
    time_limit=1800000,  # 30 minutes
    priority=Priority.NORMAL,
)
def process_pending_kpi_records(limit: int = 100) -> dict[str, Any]:
    """Execute triggers for pending records, such as bulk imports."""

    async def _execute() -> dict[str, Any]:
        batch = await get_worker_pipeline().process_pending(limit)
        return batch.to_dict()

    return run_async(_execute())


@dramatiq.actor(
    queue_name=Queues.KPI_EMAIL,
    max_retries=1,
    time_limit=600000,  # 10 minutes
    priority=Priority.LOW,
)
def retry_failed_kpi_emails(limit: int = 50) -> dict[str, int]:
    """Re-send failed KPI emails that have retries left."""

    async def _execute() -> dict[str, int]:
        return await get_worker_pipeline().retry_failed_emails(limit)

    result = run_async(_execute())
    logger.info(
        "Retried %d KPI emails: %d sent, %d failed",
        result["attempted"],
        result["sent"],
        result["failed"],
    )
    return result


def get_kpi_actors() -> list:
    """Get all KPI actors.

    Returns:
        List of KPI actor functions.
    """
    return [
        process_user_kpi,
        run_kpi_cadence,
        process_pending_kpi_records,
        retry_failed_kpi_emails,
    ]
