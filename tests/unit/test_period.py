# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for evaluation periods."""

from datetime import date, datetime, timezone

import pytest

from kpisynapse.core.kpi.exceptions import ValidationError
from kpisynapse.core.kpi.period import (
    current_period,
    normalize_period_label,
    period_bounds,
    previous_period,
    validate_period,
)


class TestValidatePeriod:
    """Tests for period validation."""

    def test_accepts_year_month(self) -> None:
        assert validate_period("2025-10") == "2025-10"

    @pytest.mark.parametrize("period", ["2025-13", "2025-00", "2025-1", "Oct-25", "", "2025/10"])
    def test_rejects_malformed(self, period: str) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_period(period)

        assert exc_info.value.field == "period"


class TestPeriodBounds:
    """Tests for the window of a period."""

    def test_thirty_one_day_month(self) -> None:
        start, end = period_bounds("2025-10")

        assert start == datetime(2025, 10, 1, tzinfo=timezone.utc)
        assert end == datetime(2025, 10, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)

    def test_leap_february(self) -> None:
        _, end = period_bounds("2024-02")

        assert end.day == 29

    def test_december_rolls_into_next_year(self) -> None:
        _, end = period_bounds("2025-12")

        assert end == datetime(2025, 12, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)

    def test_local_month_window(self) -> None:
        start, end = period_bounds("2025-10", "Asia/Kolkata")

        assert start == datetime(2025, 9, 30, 18, 30, tzinfo=timezone.utc)
        assert end == datetime(2025, 10, 31, 18, 29, 59, 999999, tzinfo=timezone.utc)

    def test_window_agrees_with_current_period(self) -> None:
        # 01:00 IST on 1 October is still September in UTC
        moment = datetime(2025, 9, 30, 19, 30, tzinfo=timezone.utc)
        period = current_period(moment, tz="Asia/Kolkata")
        start, end = period_bounds(period, "Asia/Kolkata")

        assert period == "2025-10"
        assert start <= moment <= end


class TestCurrentAndPreviousPeriod:
    """Tests for deriving periods from points in time."""

    def test_current_period_uses_reference(self) -> None:
        reference = datetime(2025, 3, 15, 12, tzinfo=timezone.utc)

        assert current_period(reference) == "2025-03"

    def test_current_period_respects_timezone(self) -> None:
        """Late UTC evening on the last day is already next month in India."""
        reference = datetime(2025, 10, 31, 20, 0, tzinfo=timezone.utc)

        assert current_period(reference) == "2025-10"
        assert current_period(reference, tz="Asia/Kolkata") == "2025-11"

    def test_previous_period(self) -> None:
        assert previous_period("2025-10") == "2025-09"

    def test_previous_period_crosses_year(self) -> None:
        assert previous_period("2025-01") == "2024-12"


class TestNormalizePeriodLabel:
    """Tests for spreadsheet month labels."""

    @pytest.mark.parametrize(
        "label,expected",
        [
            ("2025-10", "2025-10"),
            ("Oct-25", "2025-10"),
            ("oct 2025", "2025-10"),
            ("October-2025", "2025-10"),
            ("Sept-25", None),
            ("10/2025", "2025-10"),
            ("2025/10", "2025-10"),
            ("2025-10-01", "2025-10"),
            (date(2025, 10, 9), "2025-10"),
            (datetime(2025, 1, 9, 8, 30), "2025-01"),
        ],
    )
    def test_labels(self, label: object, expected: str | None) -> None:
        if expected is None:
            with pytest.raises(ValidationError):
                normalize_period_label(label)
        else:
            assert normalize_period_label(label) == expected

    @pytest.mark.parametrize("label", ["", None, "soon", "13/2025"])
    def test_rejects_unusable_labels(self, label: object) -> None:
        with pytest.raises(ValidationError) as exc_info:
            normalize_period_label(label)

        assert exc_info.value.field in ("month", "period")
