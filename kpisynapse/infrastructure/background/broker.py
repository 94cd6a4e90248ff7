# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dramatiq broker configuration for KPISynapse.

KPI actors run in worker processes fed through a Redis broker. Set
DRAMATIQ_TEST_MODE=true to use an in-memory StubBroker instead.
"""

import logging
import os

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker

from kpisynapse.core.config import get_settings

logger = logging.getLogger(__name__)


class Queues:
    """Queue names for KPI actors."""

    KPI = "kpi"
    KPI_EMAIL = "kpi_email"


class Priority:
    """Actor priorities (lower number = higher priority)."""

    HIGH = 1
    NORMAL = 3
    LOW = 5


_broker: dramatiq.Broker | None = None


def setup_dramatiq() -> dramatiq.Broker:
    """Configure the global Dramatiq broker once per process.

    Returns:
        The configured broker.
    """
    global _broker
    if _broker is not None:
        return _broker

    if os.getenv("DRAMATIQ_TEST_MODE", "false").lower() == "true":
        broker: dramatiq.Broker = StubBroker()
        broker.emit_after("process_boot")
        logger.info("Using StubBroker for testing")
    else:
        redis_url = get_settings().redis.url
        broker = RedisBroker(url=redis_url)
        logger.info("Redis broker initialized (url: %s)", redis_url.split("@")[-1])

    dramatiq.set_broker(broker)
    _broker = broker
    return broker


def get_broker() -> dramatiq.Broker:
    """Get the broker configured by setup_dramatiq().

    Raises:
        RuntimeError: If setup_dramatiq() has not run.
    """
    if _broker is None:
        raise RuntimeError("Broker not initialized. Call setup_dramatiq() first.")
    return _broker
