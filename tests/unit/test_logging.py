# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for structured logging setup.

Batches and cadences must keep working once setup_logging() has
replaced the structlog defaults.
"""

import logging
from collections.abc import Iterator

import pytest
import structlog

from kpisynapse.core.config.settings import Settings
from kpisynapse.infrastructure.background.scheduler import Cadence, KPIScheduler, RunState
from kpisynapse.utils.logging import bind_context, clear_context, get_logger, setup_logging


@pytest.fixture(params=["development", "staging"])
def configured(request, settings: Settings) -> Iterator[Settings]:
    """Apply setup_logging with console (development) or JSON (staging) output."""
    settings.environment = request.param
    settings.debug = request.param == "development"
    package_level = logging.getLogger("kpisynapse").level

    setup_logging(settings)
    yield settings

    structlog.reset_defaults()
    clear_context()
    logging.getLogger("kpisynapse").setLevel(package_level)


class TestSetupLogging:
    """Tests for the configured loggers."""

    def test_logger_emits_with_bound_context(self, configured, caplog) -> None:
        logger = get_logger("kpisynapse.tests")
        bind_context(cadence="daily", run_id="run-1")

        with caplog.at_level(logging.INFO, logger="kpisynapse"):
            logger.info("KPI batch finished", total=3)

        assert "KPI batch finished" in caplog.text
        assert "run-1" in caplog.text
        assert "kpisynapse.tests" in caplog.text

    def test_exception_logging(self, configured) -> None:
        logger = get_logger("kpisynapse.tests")

        try:
            raise RuntimeError("boom")
        except RuntimeError as e:
            logger.error("KPI run failed", error=str(e), exc_info=True)


class TestRunsAfterSetup:
    """Per-user isolation and cadence state with logging configured."""

    @pytest.mark.asyncio
    async def test_batch_isolates_failures(self, configured, pipeline, seeded, sample_period) -> None:
        batch = await pipeline.run_batch(
            ["missing", seeded["user_id"]], sample_period, reason="daily", max_concurrency=2
        )

        assert batch.total == 2
        assert batch.failed == 1
        assert batch.succeeded == 1

    @pytest.mark.asyncio
    async def test_cadence_returns_to_idle(self, configured, pipeline, seeded) -> None:
        scheduler = KPIScheduler(pipeline, configured.scheduler)

        await scheduler.run_cadence(Cadence.REALTIME)
        await scheduler.run_cadence(Cadence.REALTIME)

        state = scheduler.state(Cadence.REALTIME)
        assert state.state == RunState.IDLE
        assert state.run_count == 2
        assert state.error_count == 0
