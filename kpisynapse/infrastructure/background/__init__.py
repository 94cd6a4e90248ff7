# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background processing for KPISynapse.

- broker: Dramatiq broker setup (Redis, or StubBroker in test mode)
- scheduler: APScheduler cadences driving the KPI pipeline
- tasks: Dramatiq actors for worker processes

Actors are not imported here: importing the tasks package configures
the broker, which only worker processes and callers sending tasks need.
"""

from kpisynapse.infrastructure.background.broker import (
    Priority,
    Queues,
    get_broker,
    setup_dramatiq,
)
from kpisynapse.infrastructure.background.scheduler import (
    CADENCE_REASONS,
    Cadence,
    CadenceState,
    KPIScheduler,
    RunState,
)

__all__ = [
    # Broker
    "Priority",
    "Queues",
    "get_broker",
    "setup_dramatiq",
    # Scheduler
    "CADENCE_REASONS",
    "Cadence",
    "CadenceState",
    "KPIScheduler",
    "RunState",
]
