# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for spreadsheet bulk import."""

import pytest
from sqlalchemy import func, select

from kpisynapse.core.kpi.exceptions import ValidationError
from kpisynapse.core.kpi.types import AutomationStatus
from kpisynapse.domains.identity.directory import DatabaseIdentityDirectory
from kpisynapse.domains.kpi.bulk_import import (
    BulkImportService,
    ImportReport,
    RowResult,
    column_value,
    parse_row,
)
from kpisynapse.infrastructure.database.models import KPIRecord, KPISource

TOP_ROW = {
    "FE": "Asha Rao",
    "Month": "Oct-25",
    "Total Case Done": "140",
    "TAT %": "96%",
    "Major Negative %": "0",
    "Quality Concern % Age": "0",
    "Neighbor Check % Age": "92",
    "Negative %": "5",
    "Online % Age": "85",
    "Insuff %": "0.5",
}


class TestColumnMatching:
    """Headers match their aliases regardless of case and spacing."""

    def test_case_insensitive_alias(self) -> None:
        assert column_value({"tat  percentage": "91"}, "turnaround_time") == "91"

    def test_first_non_empty_alias_wins(self) -> None:
        row = {"TAT %": "", "TAT": "88"}

        assert column_value(row, "turnaround_time") == "88"

    def test_missing_column(self) -> None:
        assert column_value({"Other": 1}, "app_usage") is None


class TestParseRow:
    """Tests for parsing a single row."""

    def test_parses_metrics_and_period(self) -> None:
        row = parse_row(TOP_ROW, 1)

        assert row.period == "2025-10"
        assert row.name == "Asha Rao"
        assert row.metrics.turnaround_time == 96.0
        assert row.metrics.insufficiency == 0.5
        assert row.metrics.total_cases == 140

    def test_non_numeric_cells_default_to_zero(self) -> None:
        row = parse_row({"FE": "Asha Rao", "Month": "2025-10", "TAT %": "pending", "Insuff %": None}, 3)

        assert row.metrics.turnaround_time == 0.0
        assert row.metrics.insufficiency == 0.0

    def test_period_override(self) -> None:
        row = parse_row({"Employee ID": "FE001"}, 2, period_override="2025-09")

        assert row.period == "2025-09"
        assert row.label == "FE001"

    def test_missing_month(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_row({"FE": "Asha Rao"}, 4)

        assert exc_info.value.field == "month"

    def test_missing_identifier(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_row({"Month": "Oct-25", "TAT %": "90"}, 5)

        assert exc_info.value.field == "FE"


class TestBulkImportService:
    """Tests for BulkImportService against a SQLite database."""

    @pytest.mark.asyncio
    async def test_preview_writes_nothing(self, sessionmaker, seeded) -> None:
        async with sessionmaker() as db:
            service = BulkImportService(db, DatabaseIdentityDirectory(db))
            report = await service.import_rows([TOP_ROW, {**TOP_ROW, "FE": "Nobody"}], preview=True)

            count = await db.scalar(select(func.count()).select_from(KPIRecord))

        assert report.preview is True
        assert report.matched == 1
        assert report.unmatched == 1
        assert report.imported == 0
        assert report.rows[0].overall_score == 100
        assert report.rows[0].rating == "Outstanding"
        assert report.rows[1].overall_score == 100
        assert count == 0

    @pytest.mark.asyncio
    async def test_import_creates_pending_records(self, sessionmaker, seeded) -> None:
        rows = [
            {**TOP_ROW, "FE": "", "Employee ID": "FE001"},
            {**TOP_ROW, "FE": "Nobody"},
            {"TAT %": "90"},
        ]

        async with sessionmaker() as db:
            service = BulkImportService(db, DatabaseIdentityDirectory(db))
            report = await service.import_rows(rows, submitted_by="ops@example.com")

        assert report.imported == 1
        assert report.unmatched == 1
        assert report.errors == 1
        assert report.rows[0].created is True
        assert report.rows[2].error is not None

        async with sessionmaker() as db:
            record = await db.get(KPIRecord, report.rows[0].record_id)

        assert record.user_id == seeded["user_id"]
        assert record.period == "2025-10"
        assert record.source == KPISource.BULK_IMPORT
        assert record.automation_status == AutomationStatus.PENDING.value
        assert record.submitted_by == "ops@example.com"
        assert record.overall_score == 100

    @pytest.mark.asyncio
    async def test_reimport_updates_active_record(self, sessionmaker, seeded) -> None:
        async with sessionmaker() as db:
            service = BulkImportService(db, DatabaseIdentityDirectory(db))
            first = await service.import_rows([TOP_ROW])
            second = await service.import_rows([{**TOP_ROW, "Online % Age": "50"}])

            active = await db.scalar(
                select(func.count()).select_from(KPIRecord).where(KPIRecord.is_active.is_(True))
            )

        assert first.rows[0].created is True
        assert second.rows[0].created is False
        assert second.rows[0].record_id == first.rows[0].record_id
        assert second.rows[0].overall_score == 90
        assert active == 1

    @pytest.mark.asyncio
    async def test_matches_by_email_case_insensitively(self, sessionmaker, seeded) -> None:
        row = {**TOP_ROW, "FE": "", "Email": "ASHA@example.com"}

        async with sessionmaker() as db:
            service = BulkImportService(db, DatabaseIdentityDirectory(db))
            report = await service.import_rows([row], period_override="Sep-25", preview=True)

        assert report.rows[0].matched is True
        assert report.rows[0].user_id == seeded["user_id"]
        assert report.rows[0].period == "2025-09"

    def test_report_to_dict(self) -> None:
        report = ImportReport(preview=False, rows=[RowResult(1, "Asha", matched=True, record_id="r1")])

        data = report.to_dict()

        assert data["total_rows"] == 1
        assert data["imported"] == 1
        assert data["rows"][0]["label"] == "Asha"
