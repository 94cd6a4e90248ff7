# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task actors for KPISynapse.

Usage:
    from kpisynapse.infrastructure.background.tasks import process_user_kpi

    # Send a task
    process_user_kpi.send("user-id", trigger_reason="quiz_completed")

Running Workers:
    dramatiq kpisynapse.infrastructure.background.tasks --processes 2 --threads 4
"""

from kpisynapse.infrastructure.background.tasks.base import (
    get_worker_pipeline,
    get_worker_scheduler,
    run_async,
)
from kpisynapse.infrastructure.background.tasks.kpi import (
    get_kpi_actors,
    process_pending_kpi_records,
    process_user_kpi,
    retry_failed_kpi_emails,
    run_kpi_cadence,
)

__all__ = [
    "get_kpi_actors",
    "get_worker_pipeline",
    "get_worker_scheduler",
    "process_pending_kpi_records",
    "process_user_kpi",
    "retry_failed_kpi_emails",
    "run_async",
    "run_kpi_cadence",
]
