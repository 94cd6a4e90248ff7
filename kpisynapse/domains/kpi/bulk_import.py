# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bulk import of KPI metrics from spreadsheet rows.

Rows arrive as dicts keyed by column header (for example parsed from an
uploaded sheet). Headers are matched against known aliases ignoring
case, so "TAT %", "tat %" and "TAT Percentage" all feed turnaround time.
Missing or non-numeric metric cells become 0.

Each row is matched to a user by employee code, then email, then name.
In preview mode nothing is written. Otherwise every matched row goes
through the same update-or-create path as activity evaluations and
leaves its record pending for the trigger pipeline.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from kpisynapse.core.kpi.exceptions import KPIError, ValidationError
from kpisynapse.core.kpi.period import normalize_period_label
from kpisynapse.core.kpi.scoring import ScoringEngine
from kpisynapse.core.kpi.types import MetricName, RawMetrics
from kpisynapse.domains.identity.directory import IdentityDirectory
from kpisynapse.domains.kpi.records import KPIRecordService
from kpisynapse.infrastructure.database.models import KPISource

logger = logging.getLogger(__name__)

COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "month": ("Month", "month", "MONTH"),
    "name": ("FE", "fe", "Field Executive", "Name"),
    "total_cases": ("Total Case Done", "Total Cases", "Cases Done"),
    MetricName.TURNAROUND_TIME.value: ("TAT %", "TAT", "TAT Percentage"),
    MetricName.MAJOR_NEGATIVITY.value: ("Major Negative %", "Major Negativity %", "Major Neg %"),
    MetricName.GENERAL_NEGATIVITY.value: ("Negative %", "Negativity %", "General Negativity %"),
    MetricName.QUALITY_CONCERN.value: (
        "Quality Concern % Age",
        "Quality Concern %",
        "Quality %",
    ),
    MetricName.INSUFFICIENCY.value: ("Insuff %", "Insufficiency %"),
    MetricName.NEIGHBOR_CHECK.value: ("Neighbor Check % Age", "Neighbor Check %"),
    MetricName.APP_USAGE.value: ("Online % Age", "App Usage %", "Online %"),
    "email": ("Email",),
    "employee_code": ("Employee ID",),
}


def _normalize_header(header: Any) -> str:
    return " ".join(str(header).split()).lower()


def column_value(row: dict[str, Any], key: str) -> Any:
    """Get the first non-empty cell among the aliases of ``key``."""
    normalized = {_normalize_header(header): value for header, value in row.items()}
    for alias in COLUMN_ALIASES[key]:
        value = normalized.get(_normalize_header(alias))
        if value is not None and str(value).strip() != "":
            return value
    return None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class ImportRow:
    """One parsed spreadsheet row."""

    row_number: int
    period: str
    metrics: RawMetrics
    name: str | None = None
    email: str | None = None
    employee_code: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.employee_code or self.email or f"row {self.row_number}"


def parse_row(
    row: dict[str, Any],
    row_number: int,
    period_override: str | None = None,
) -> ImportRow:
    """Parse one spreadsheet row.

    Args:
        row: Cells keyed by column header.
        row_number: 1-based position used in reports.
        period_override: Period applied instead of the Month column.

    Raises:
        ValidationError: If the row has no period or no user identifier.
    """
    month = period_override or column_value(row, "month")
    if month is None:
        raise ValidationError(
            f"Row {row_number} has no period; include a Month column (e.g. Oct-25)",
            field="month",
        )
    period = normalize_period_label(month)

    name = _text(column_value(row, "name"))
    email = _text(column_value(row, "email"))
    employee_code = _text(column_value(row, "employee_code"))
    if not (name or email or employee_code):
        raise ValidationError(f"Row {row_number} has no user identifier", field="FE")

    values = {metric.value: column_value(row, metric.value) for metric in MetricName}
    values["total_cases"] = column_value(row, "total_cases")

    return ImportRow(
        row_number=row_number,
        period=period,
        metrics=RawMetrics.from_mapping(values),
        name=name,
        email=email,
        employee_code=employee_code,
    )


@dataclass
class RowResult:
    """Outcome of importing one row."""

    row_number: int
    label: str
    matched: bool = False
    user_id: str | None = None
    period: str | None = None
    overall_score: int | None = None
    rating: str | None = None
    record_id: str | None = None
    created: bool | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_number": self.row_number,
            "label": self.label,
            "matched": self.matched,
            "user_id": self.user_id,
            "period": self.period,
            "overall_score": self.overall_score,
            "rating": self.rating,
            "record_id": self.record_id,
            "created": self.created,
            "error": self.error,
        }


@dataclass
class ImportReport:
    """Outcome of one import call."""

    preview: bool
    rows: list[RowResult] = field(default_factory=list)

    @property
    def matched(self) -> int:
        return sum(1 for r in self.rows if r.matched)

    @property
    def unmatched(self) -> int:
        return sum(1 for r in self.rows if not r.matched and r.error is None)

    @property
    def imported(self) -> int:
        return sum(1 for r in self.rows if r.record_id is not None)

    @property
    def errors(self) -> int:
        return sum(1 for r in self.rows if r.error is not None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "preview": self.preview,
            "total_rows": len(self.rows),
            "matched": self.matched,
            "unmatched": self.unmatched,
            "imported": self.imported,
            "errors": self.errors,
            "rows": [r.to_dict() for r in self.rows],
        }


class BulkImportService:
    """Imports spreadsheet KPI rows as pending KPI records."""

    def __init__(
        self,
        db: AsyncSession,
        identity: IdentityDirectory,
        scoring: ScoringEngine | None = None,
    ) -> None:
        self._db = db
        self._identity = identity
        self._scoring = scoring or ScoringEngine()
        self._records = KPIRecordService(db)

    async def import_rows(
        self,
        rows: Iterable[dict[str, Any]],
        period_override: str | None = None,
        submitted_by: str | None = None,
        preview: bool = False,
    ) -> ImportReport:
        """Import rows, committing each matched row on its own.

        Args:
            rows: Spreadsheet rows keyed by column header.
            period_override: Period used for every row instead of Month.
            submitted_by: Actor recorded on created or updated records.
            preview: Report matches and scores without writing.

        Returns:
            ImportReport with one entry per row.
        """
        report = ImportReport(preview=preview)
        override = normalize_period_label(period_override) if period_override else None

        for index, row in enumerate(rows, start=1):
            try:
                parsed = parse_row(row, index, override)
            except ValidationError as e:
                report.rows.append(RowResult(row_number=index, label=f"row {index}", error=e.message))
                continue

            result = RowResult(row_number=index, label=parsed.label, period=parsed.period)
            report.rows.append(result)

            user = await self._identity.find_user(
                employee_code=parsed.employee_code,
                email=parsed.email,
                name=parsed.name,
            )
            scores = self._scoring.score(parsed.metrics)
            result.overall_score = scores.overall
            result.rating = scores.rating.value

            if user is None:
                logger.info("No user matched import row %d (%s)", index, parsed.label)
                continue

            result.matched = True
            result.user_id = user.id
            if preview:
                continue

            try:
                record, created = await self._records.upsert_evaluation(
                    user.id,
                    parsed.period,
                    parsed.metrics,
                    scores,
                    source=KPISource.BULK_IMPORT,
                    submitted_by=submitted_by,
                    comments="Imported from spreadsheet",
                )
                result.record_id = record.id
                result.created = created
                await self._db.commit()
            except KPIError as e:
                await self._db.rollback()
                result.record_id = None
                result.error = e.message
            except Exception as e:
                logger.error("Failed to import row %d (%s): %s", index, parsed.label, str(e), exc_info=True)
                await self._db.rollback()
                result.record_id = None
                result.error = str(e)

        logger.info(
            "Bulk import%s: rows=%d matched=%d unmatched=%d imported=%d errors=%d",
            " preview" if preview else "",
            len(report.rows),
            report.matched,
            report.unmatched,
            report.imported,
            report.errors,
        )
        return report
