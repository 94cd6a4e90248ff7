# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""KPI domain: aggregation, record lifecycle, action execution and pipeline.

- activity: Activity read store for the aggregator
- aggregator: Activity to canonical metrics
- records: KPI record update-or-create and automation status
- orchestrator: Directive execution with per-recipient isolation
- bulk_import: Spreadsheet rows as pending records
- pipeline: Per-user and batch runs
"""

from kpisynapse.domains.kpi.activity import (
    ActivitySnapshot,
    ActivityStore,
    DatabaseActivityStore,
    ModuleActivity,
    ProgressActivity,
    QuizActivity,
)
from kpisynapse.domains.kpi.aggregator import MetricAggregator, metrics_from_activity
from kpisynapse.domains.kpi.bulk_import import (
    COLUMN_ALIASES,
    BulkImportService,
    ImportReport,
    ImportRow,
    RowResult,
    parse_row,
)
from kpisynapse.domains.kpi.orchestrator import (
    ActionOrchestrator,
    DeliveryOutcome,
    DirectiveOutcome,
    ExecutionReport,
    notification_priority,
)
from kpisynapse.domains.kpi.pipeline import BatchResult, KPIPipeline, UserRunResult
from kpisynapse.domains.kpi.records import KPIRecordService

__all__ = [
    # Activity
    "ActivitySnapshot",
    "ActivityStore",
    "DatabaseActivityStore",
    "ModuleActivity",
    "ProgressActivity",
    "QuizActivity",
    # Aggregation
    "MetricAggregator",
    "metrics_from_activity",
    # Bulk import
    "COLUMN_ALIASES",
    "BulkImportService",
    "ImportReport",
    "ImportRow",
    "RowResult",
    "parse_row",
    # Orchestration
    "ActionOrchestrator",
    "DeliveryOutcome",
    "DirectiveOutcome",
    "ExecutionReport",
    "notification_priority",
    # Pipeline
    "BatchResult",
    "KPIPipeline",
    "UserRunResult",
    # Records
    "KPIRecordService",
]
