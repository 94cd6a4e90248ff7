# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for KPISynapse.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime operations
"""

from kpisynapse.utils.datetime import (
    days_after,
    ensure_utc,
    format_iso,
    minutes_ago,
    now,
    utc_now,
)
from kpisynapse.utils.logging import bind_context, clear_context, get_logger, setup_logging

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    # Datetime
    "utc_now",
    "now",
    "ensure_utc",
    "minutes_ago",
    "days_after",
    "format_iso",
]
