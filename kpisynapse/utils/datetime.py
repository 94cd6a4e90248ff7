# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for KPISynapse.

All timestamps are stored in UTC and all Python datetimes are
timezone-aware. SQLite returns naive datetimes, so values read back
from the database go through ensure_utc() before comparison.

Usage:
------
    from kpisynapse.utils.datetime import utc_now

    # For SQLAlchemy model defaults
    created_at = mapped_column(DateTime(timezone=True), default=utc_now)
"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive datetime - assume UTC
        return dt.replace(tzinfo=timezone.utc)

    # Already aware - convert to UTC
    return dt.astimezone(timezone.utc)


def minutes_ago(minutes: float, reference: datetime | None = None) -> datetime:
    """Get a datetime N minutes before now (or before a reference).

    Args:
        minutes: Number of minutes to go back.
        reference: Point in time to count back from. Defaults to now.

    Returns:
        Timezone-aware UTC datetime.
    """
    base = ensure_utc(reference) if reference else utc_now()
    return base - timedelta(minutes=minutes)


def days_after(start: datetime, days: int) -> datetime:
    """Get a datetime N days after a start datetime.

    Args:
        start: The start datetime.
        days: Number of days to add.

    Returns:
        Timezone-aware UTC datetime.
    """
    return ensure_utc(start) + timedelta(days=days)


def format_iso(dt: datetime | None) -> str | None:
    """Format a datetime as ISO 8601 string.

    Args:
        dt: Datetime to format.

    Returns:
        ISO 8601 formatted string or None.
    """
    if dt is None:
        return None

    dt_utc = ensure_utc(dt)
    return dt_utc.isoformat()


# Aliases for convenience
now = utc_now
