# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the action orchestrator."""

import os
from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest
from sqlalchemy import select

from kpisynapse.core.config.settings import AutomationSettings, SMTPSettings
from kpisynapse.core.kpi.rules import (
    AuditDirective,
    RewardDirective,
    TrainingDirective,
    WarningDirective,
)
from kpisynapse.core.kpi.scoring import ScoringEngine
from kpisynapse.core.kpi.types import (
    ALL_ROLES,
    AuditType,
    Priority,
    RawMetrics,
    RecipientRole,
    TrainingType,
)
from kpisynapse.domains.identity.directory import DatabaseIdentityDirectory
from kpisynapse.domains.kpi.orchestrator import (
    ActionOrchestrator,
    DirectiveOutcome,
    notification_priority,
)
from kpisynapse.domains.kpi.records import KPIRecordService
from kpisynapse.infrastructure.database.models import (
    AuditSchedule,
    EmailDispatchLog,
    EmailStatus,
    Notification,
    NotificationPriority,
    TrainingAssignment,
)
from kpisynapse.infrastructure.notifications.channels import (
    DeliveryStatus,
    EmailChannel,
    NotificationPayload,
)
from kpisynapse.utils.datetime import ensure_utc

COMPLIANCE_AND_HEAD = frozenset({RecipientRole.COMPLIANCE, RecipientRole.DEPARTMENT_HEAD})

TRAINING = TrainingDirective(
    training_type=TrainingType.BASIC,
    priority=Priority.HIGH,
    justification="Overall KPI score 38 is below the 40 threshold",
    recipients=ALL_ROLES,
    rule="score_below_40",
)
AUDIT = AuditDirective(
    audit_type=AuditType.DUMMY_AUDIT,
    priority=Priority.MEDIUM,
    justification="Overall KPI score 38 is in the Unsatisfactory tier",
    recipients=COMPLIANCE_AND_HEAD,
    rule="tier_unsatisfactory",
)
WARNING = WarningDirective(
    justification="Overall KPI score 38 is below the 40 threshold",
    recipients=frozenset({RecipientRole.SUBJECT}),
    rule="score_below_40",
)


async def create_record(db, user_id: str):
    metrics = RawMetrics()
    record, _ = await KPIRecordService(db).upsert_evaluation(
        user_id, "2025-10", metrics, ScoringEngine().score(metrics)
    )
    await db.commit()
    return record


def orchestrator(db, transport, **overrides) -> ActionOrchestrator:
    settings = AutomationSettings(operation_timeout_seconds=5.0, **overrides)
    return ActionOrchestrator(db, DatabaseIdentityDirectory(db), transport, settings)


class TestNotificationPriority:
    """Priority of the in-app notification."""

    def test_warning_is_urgent(self) -> None:
        outcomes = [DirectiveOutcome(TRAINING), DirectiveOutcome(WARNING)]

        assert notification_priority(outcomes) == NotificationPriority.URGENT

    def test_failed_warning_does_not_count(self) -> None:
        outcomes = [DirectiveOutcome(TRAINING), DirectiveOutcome(WARNING, error="boom")]

        assert notification_priority(outcomes) == NotificationPriority.HIGH

    def test_nothing_executed(self) -> None:
        assert notification_priority([]) == NotificationPriority.NORMAL


class TestExecute:
    """Tests for ActionOrchestrator.execute."""

    @pytest.mark.asyncio
    async def test_linked_records_and_due_dates(self, sessionmaker, transport, seeded) -> None:
        async with sessionmaker() as db:
            record = await create_record(db, seeded["user_id"])
            user = await DatabaseIdentityDirectory(db).get_user(seeded["user_id"])

            report = await orchestrator(db, transport).execute(user, record, [TRAINING, AUDIT])
            await db.commit()

            training = await db.get(TrainingAssignment, report.directives[0].linked_record_id)
            audit = await db.get(AuditSchedule, report.directives[1].linked_record_id)

        assert training.kpi_record_id == record.id
        assert training.priority == "high"
        assert (ensure_utc(training.due_date) - ensure_utc(training.assigned_at)).days == 7
        assert audit.audit_type == "dummy_audit"
        assert audit.audit_method == "Dummy case audit to test performance"
        assert (ensure_utc(audit.scheduled_date) - ensure_utc(audit.scheduled_at)).days == 7
        assert audit.audit_scope == "KPI period 2025-10"

    @pytest.mark.asyncio
    async def test_email_logs_link_their_records(self, sessionmaker, transport, seeded) -> None:
        async with sessionmaker() as db:
            record = await create_record(db, seeded["user_id"])
            user = await DatabaseIdentityDirectory(db).get_user(seeded["user_id"])

            report = await orchestrator(db, transport, summary_email_enabled=False).execute(
                user, record, [AUDIT]
            )

            logs = (await db.execute(select(EmailDispatchLog))).scalars().all()

        assert report.summary_deliveries == []
        assert sorted(log.recipient_email for log in logs) == [
            "compliance@example.com",
            "hod@example.com",
        ]
        assert {log.audit_schedule_id for log in logs} == {report.directives[0].linked_record_id}
        assert {log.template_type for log in logs} == {"audit"}
        assert {log.max_retries for log in logs} == {3}

    @pytest.mark.asyncio
    async def test_warning_notification_is_urgent(self, sessionmaker, transport, seeded) -> None:
        async with sessionmaker() as db:
            record = await create_record(db, seeded["user_id"])
            user = await DatabaseIdentityDirectory(db).get_user(seeded["user_id"])

            report = await orchestrator(db, transport).execute(user, record, [WARNING])
            await db.commit()

            notification = await db.get(Notification, report.notification_id)

        assert report.notification_priority == NotificationPriority.URGENT.value
        assert notification.priority == "urgent"
        assert notification.sender == "kpi_automation"
        assert "Actions: warning_letter." in notification.message
        assert transport.subjects_for("asha@example.com")[0] == "Performance Warning Notice"

    @pytest.mark.asyncio
    async def test_no_directives(self, sessionmaker, transport, seeded) -> None:
        """The summary and notification still go out."""
        async with sessionmaker() as db:
            record = await create_record(db, seeded["user_id"])
            user = await DatabaseIdentityDirectory(db).get_user(seeded["user_id"])

            report = await orchestrator(db, transport).execute(user, record, [])

        assert report.directives == []
        assert report.emails_sent == 3
        assert report.notification_priority == NotificationPriority.NORMAL.value
        assert report.triggered_actions() == []

    @pytest.mark.asyncio
    async def test_summary_roles_are_configurable(self, sessionmaker, transport, seeded) -> None:
        async with sessionmaker() as db:
            record = await create_record(db, seeded["user_id"])
            user = await DatabaseIdentityDirectory(db).get_user(seeded["user_id"])

            await orchestrator(db, transport, summary_email_roles=["compliance"]).execute(
                user, record, []
            )

        assert [p.recipient_email for p in transport.sent] == ["compliance@example.com"]

    @pytest.mark.asyncio
    async def test_recipient_resolution_failure_is_isolated(
        self, sessionmaker, transport, seeded
    ) -> None:
        class BrokenDirectory(DatabaseIdentityDirectory):
            async def resolve_recipients(self, user, roles):
                if set(roles) == COMPLIANCE_AND_HEAD:
                    raise RuntimeError("directory offline")
                return await super().resolve_recipients(user, roles)

        async with sessionmaker() as db:
            record = await create_record(db, seeded["user_id"])
            user = await DatabaseIdentityDirectory(db).get_user(seeded["user_id"])
            orch = ActionOrchestrator(
                db, BrokenDirectory(db), transport, AutomationSettings(summary_email_enabled=False)
            )

            report = await orch.execute(user, record, [AUDIT, TRAINING])

        assert report.directives[0].executed is False
        assert "directory offline" in report.directives[0].error
        assert report.directives[0].linked_record_id is not None
        assert report.directives[1].executed is True
        assert report.emails_sent == 5
        assert len(report.errors) == 1

    @pytest.mark.asyncio
    async def test_audit_trail_lists_each_directive(self, sessionmaker, transport, seeded) -> None:
        async with sessionmaker() as db:
            record = await create_record(db, seeded["user_id"])
            user = await DatabaseIdentityDirectory(db).get_user(seeded["user_id"])

            reward = RewardDirective(
                justification="Overall KPI score 96 is in the Outstanding tier",
                recipients=frozenset({RecipientRole.MANAGER}),
                rule="tier_outstanding",
            )
            await orchestrator(db, transport).execute(user, record, [reward])

        entry = record.audit_trail[-1]
        assert entry["action"] == "directive_executed"
        assert entry["detail"]["action"] == "reward"
        assert entry["detail"]["emails_sent"] == 1


class TestEmailChannel:
    """The SMTP channel reports problems instead of raising."""

    @pytest.mark.asyncio
    async def test_unconfigured_channel_skips(self, sessionmaker, seeded) -> None:
        """Skipped sends are logged as failed so they can be retried."""
        with patch.dict(os.environ, {}, clear=True):
            transport = EmailChannel(SMTPSettings())

        async with sessionmaker() as db:
            record = await create_record(db, seeded["user_id"])
            user = await DatabaseIdentityDirectory(db).get_user(seeded["user_id"])

            report = await orchestrator(db, transport).execute(user, record, [])
            logs = (await db.execute(select(EmailDispatchLog))).scalars().all()

        assert report.emails_sent == 0
        assert report.emails_failed == 3
        assert {log.status for log in logs} == {EmailStatus.FAILED.value}
        assert {log.error_message for log in logs} == {"SMTP configuration incomplete"}

    @pytest.mark.asyncio
    async def test_smtp_error_is_reported(self) -> None:
        channel = EmailChannel(
            SMTPSettings(
                host="smtp.example.com",
                username="kpi",
                password="secret",  # type: ignore[arg-type]
                from_email="kpi@example.com",
            )
        )
        payload = NotificationPayload(
            notification_type="training",
            title="Training Required: basic",
            message="body",
            recipient_id="u1",
            recipient_email="asha@example.com",
        )

        with patch(
            "kpisynapse.infrastructure.notifications.channels.email.aiosmtplib.send",
            AsyncMock(side_effect=aiosmtplib.SMTPException("relay denied")),
        ):
            result = await channel.send(payload)

        assert result.status == DeliveryStatus.FAILED
        assert "relay denied" in result.error_message

    @pytest.mark.asyncio
    async def test_sends_multipart_message(self) -> None:
        channel = EmailChannel(
            SMTPSettings(
                host="smtp.example.com",
                username="kpi",
                password="secret",  # type: ignore[arg-type]
                from_email="kpi@example.com",
            )
        )
        payload = NotificationPayload(
            notification_type="kpi_score",
            title="KPI Score Update: 2025-10",
            message="body",
            recipient_id="u1",
            recipient_email="asha@example.com",
            html="<p>body</p>",
        )

        with patch(
            "kpisynapse.infrastructure.notifications.channels.email.aiosmtplib.send",
            AsyncMock(return_value=({}, "OK")),
        ) as send:
            result = await channel.send(payload)

        message = send.await_args.args[0]
        assert result.succeeded
        assert message["To"] == "asha@example.com"
        assert message["Subject"] == "KPI Score Update: 2025-10"
        assert len(message.get_payload()) == 2
        assert send.await_args.kwargs["hostname"] == "smtp.example.com"
