# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for KPISynapse.

Example:
    >>> from kpisynapse.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from kpisynapse.core.config.settings import (
    AutomationSettings,
    DatabaseSettings,
    RedisSettings,
    SchedulerSettings,
    Settings,
    SMTPSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "AutomationSettings",
    "DatabaseSettings",
    "RedisSettings",
    "SchedulerSettings",
    "Settings",
    "SMTPSettings",
    "clear_settings_cache",
    "get_settings",
]
