# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Evaluation periods: calendar months identified as ``YYYY-MM``."""

import calendar
import re
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from kpisynapse.core.kpi.exceptions import ValidationError
from kpisynapse.utils.datetime import utc_now

PERIOD_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")

_MONTHS = {
    name.lower(): index
    for index, name in enumerate(calendar.month_abbr)
    if name
} | {
    name.lower(): index
    for index, name in enumerate(calendar.month_name)
    if name
}

# Oct-25, Oct 2025, October-2025
_NAMED_MONTH = re.compile(r"^([A-Za-z]+)[\s\-/']+(\d{2}|\d{4})$")
# 10/2025, 10-2025
_NUMERIC_MONTH_FIRST = re.compile(r"^(\d{1,2})[/\-.](\d{4})$")
# 2025/10, 2025-10, 2025-10-01
_NUMERIC_YEAR_FIRST = re.compile(r"^(\d{4})[/\-.](\d{1,2})(?:[/\-.]\d{1,2})?$")


def format_period(year: int, month: int) -> str:
    """Format a year and month as a period identifier."""
    if not 1 <= month <= 12:
        raise ValidationError(f"Month out of range: {month}", field="period")
    return f"{year:04d}-{month:02d}"


def parse_period(period: str) -> tuple[int, int]:
    """Split a ``YYYY-MM`` period into year and month.

    Raises:
        ValidationError: If the period is malformed.
    """
    match = PERIOD_PATTERN.match(period or "")
    if not match:
        raise ValidationError(f"Invalid period: {period!r}", field="period")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid period: {period!r}", field="period")
    return year, month


def validate_period(period: str) -> str:
    """Return the period unchanged after checking its format."""
    parse_period(period)
    return period


def period_bounds(period: str, tz: str | None = None) -> tuple[datetime, datetime]:
    """Get the window covered by a period, as UTC instants.

    Args:
        period: Period identifier.
        tz: Timezone whose calendar month is the period. Defaults to UTC,
            and should match the timezone current_period() is called with.

    Returns:
        First instant of the month and the last microsecond before the
        next month starts.
    """
    year, month = parse_period(period)
    zone = ZoneInfo(tz) if tz else timezone.utc
    next_year, next_month = (year + 1, 1) if month == 12 else (year, month + 1)
    start = datetime(year, month, 1, tzinfo=zone)
    end = datetime(next_year, next_month, 1, tzinfo=zone) - timedelta(microseconds=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def current_period(reference: datetime | None = None, tz: str | None = None) -> str:
    """Get the period containing a point in time.

    Args:
        reference: Point in time. Defaults to now.
        tz: Timezone in which the month boundary is evaluated.

    Returns:
        Period identifier.
    """
    moment = reference or utc_now()
    if tz:
        moment = moment.astimezone(ZoneInfo(tz))
    return format_period(moment.year, moment.month)


def previous_period(period: str) -> str:
    """Get the period immediately before ``period``."""
    year, month = parse_period(period)
    if month == 1:
        return format_period(year - 1, 12)
    return format_period(year, month - 1)


def normalize_period_label(label: object) -> str:
    """Normalize a spreadsheet month label to a period identifier.

    Accepts ``2025-10``, ``Oct-25``, ``October 2025``, ``10/2025`` and
    date or datetime values.

    Raises:
        ValidationError: If the label cannot be interpreted.
    """
    if isinstance(label, (datetime, date)):
        return format_period(label.year, label.month)

    text = str(label or "").strip()
    if not text:
        raise ValidationError("Missing month", field="month")

    match = _NUMERIC_YEAR_FIRST.match(text)
    if match:
        return format_period(int(match.group(1)), int(match.group(2)))

    match = _NUMERIC_MONTH_FIRST.match(text)
    if match:
        return format_period(int(match.group(2)), int(match.group(1)))

    match = _NAMED_MONTH.match(text)
    if match:
        month = _MONTHS.get(match.group(1).lower())
        if month is None:
            raise ValidationError(f"Unknown month name: {match.group(1)}", field="month")
        year = int(match.group(2))
        if year < 100:
            year += 2000
        return format_period(year, month)

    raise ValidationError(f"Unrecognized month label: {text!r}", field="month")
