# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Action orchestration for trigger directives.

ActionOrchestrator turns the directives of one evaluation into records
and messages:

1. Create the linked TrainingAssignment or AuditSchedule.
2. Resolve the directive's recipient roles to addresses.
3. Send one email per recipient. Each send is logged as a pending
   EmailDispatchLog and committed before the attempt, then updated to
   sent or failed.
4. Send the score summary email.
5. Create one in-app Notification for the evaluated user.

Failures are isolated per directive and per recipient and reported in
the ExecutionReport; execute() itself does not raise for them.

Re-running execute() for the same record creates additional linked
records. Preventing duplicate runs is the job of the automation status
claim in the pipeline.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kpisynapse.core.config.settings import AutomationSettings
from kpisynapse.core.kpi.rules import (
    AuditDirective,
    TrainingDirective,
    TriggerDirective,
    WarningDirective,
)
from kpisynapse.core.kpi.types import Priority, RecipientRole
from kpisynapse.domains.identity.directory import IdentityDirectory, Recipient, UserIdentity
from kpisynapse.infrastructure.database.models import (
    AssignedBy,
    AuditSchedule,
    EmailDispatchLog,
    EmailStatus,
    KPIRecord,
    NotificationPriority,
    TrainingAssignment,
)
from kpisynapse.infrastructure.notifications.channels import (
    BaseChannel,
    ChannelResult,
    DeliveryStatus,
    InAppChannel,
    NotificationPayload,
)
from kpisynapse.infrastructure.notifications.templates import (
    EmailContext,
    RenderedEmail,
    audit_method,
    render_directive_email,
    render_summary_email,
)
from kpisynapse.utils.datetime import days_after, utc_now

logger = logging.getLogger(__name__)

URGENT_PRIORITIES = frozenset({Priority.HIGH, Priority.CRITICAL})


@dataclass
class DeliveryOutcome:
    """Result of one email to one recipient."""

    recipient_email: str
    role: str
    status: str
    email_log_id: str | None = None
    error: str | None = None

    @property
    def sent(self) -> bool:
        return self.status == EmailStatus.SENT.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "recipient_email": self.recipient_email,
            "role": self.role,
            "status": self.status,
            "email_log_id": self.email_log_id,
            "error": self.error,
        }


@dataclass
class DirectiveOutcome:
    """Result of executing one directive.

    Attributes:
        directive: The executed directive.
        linked_record_id: Id of the created training or audit record.
        deliveries: One entry per resolved recipient.
        error: Why the directive could not be executed, if it failed.
    """

    directive: TriggerDirective
    linked_record_id: str | None = None
    deliveries: list[DeliveryOutcome] = field(default_factory=list)
    error: str | None = None

    @property
    def executed(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        data = self.directive.to_dict()
        data.update(
            {
                "linked_record_id": self.linked_record_id,
                "executed": self.executed,
                "error": self.error,
                "deliveries": [d.to_dict() for d in self.deliveries],
            }
        )
        return data


@dataclass
class ExecutionReport:
    """Aggregated outcome of one execute() call."""

    record_id: str
    user_id: str
    directives: list[DirectiveOutcome] = field(default_factory=list)
    summary_deliveries: list[DeliveryOutcome] = field(default_factory=list)
    notification_id: str | None = None
    notification_priority: str = NotificationPriority.NORMAL.value
    errors: list[str] = field(default_factory=list)

    @property
    def all_deliveries(self) -> list[DeliveryOutcome]:
        deliveries = [d for outcome in self.directives for d in outcome.deliveries]
        return deliveries + self.summary_deliveries

    @property
    def emails_sent(self) -> int:
        return sum(1 for d in self.all_deliveries if d.sent)

    @property
    def emails_failed(self) -> int:
        return sum(1 for d in self.all_deliveries if d.status == EmailStatus.FAILED.value)

    @property
    def directives_failed(self) -> int:
        return sum(1 for outcome in self.directives if not outcome.executed)

    def triggered_actions(self) -> list[dict[str, Any]]:
        """Directive descriptors stored on the KPI record."""
        return [outcome.to_dict() for outcome in self.directives]

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "user_id": self.user_id,
            "directives_total": len(self.directives),
            "directives_failed": self.directives_failed,
            "emails_sent": self.emails_sent,
            "emails_failed": self.emails_failed,
            "notification_id": self.notification_id,
            "notification_priority": self.notification_priority,
            "errors": self.errors,
        }


def notification_priority(outcomes: list[DirectiveOutcome]) -> NotificationPriority:
    """Urgent if a warning executed, high if anything executed."""
    executed = [o for o in outcomes if o.executed]
    if any(isinstance(o.directive, WarningDirective) for o in executed):
        return NotificationPriority.URGENT
    if executed:
        return NotificationPriority.HIGH
    return NotificationPriority.NORMAL


class ActionOrchestrator:
    """Executes trigger directives for one KPI record.

    Attributes:
        identity: Recipient resolution.
        transport: Email channel used for every send.
        settings: Due-date offsets, timeouts and email settings.
    """

    def __init__(
        self,
        db: AsyncSession,
        identity: IdentityDirectory,
        transport: BaseChannel,
        settings: AutomationSettings,
    ) -> None:
        self._db = db
        self.identity = identity
        self.transport = transport
        self.settings = settings

    # =========================================================================
    # Linked records
    # =========================================================================

    def _training_due_days(self, priority: Priority) -> int:
        if priority in URGENT_PRIORITIES:
            return self.settings.training_due_days_high
        return self.settings.training_due_days_default

    def _audit_due_days(self, priority: Priority) -> int:
        if priority in URGENT_PRIORITIES:
            return self.settings.audit_due_days_high
        return self.settings.audit_due_days_default

    async def _create_linked_record(
        self,
        user_id: str,
        record_id: str,
        period: str,
        directive: TriggerDirective,
    ) -> TrainingAssignment | AuditSchedule | None:
        now = utc_now()
        notes = f"Auto-generated from KPI record {record_id} ({period})"

        if isinstance(directive, TrainingDirective):
            linked: TrainingAssignment | AuditSchedule = TrainingAssignment(
                user_id=user_id,
                kpi_record_id=record_id,
                training_type=directive.training_type.value,
                assigned_by=AssignedBy.KPI_TRIGGER.value,
                assigned_at=now,
                due_date=days_after(now, self._training_due_days(directive.priority)),
                priority=directive.priority.value,
                reason=directive.justification,
                notes=notes,
            )
        elif isinstance(directive, AuditDirective):
            linked = AuditSchedule(
                user_id=user_id,
                kpi_record_id=record_id,
                audit_type=directive.audit_type.value,
                scheduled_by=AssignedBy.KPI_TRIGGER.value,
                scheduled_at=now,
                scheduled_date=days_after(now, self._audit_due_days(directive.priority)),
                priority=directive.priority.value,
                reason=directive.justification,
                notes=notes,
                audit_scope=f"KPI period {period}",
                audit_method=audit_method(directive.audit_type),
            )
        else:
            return None

        self._db.add(linked)
        await self._db.flush()
        return linked

    # =========================================================================
    # Email
    # =========================================================================

    async def _send(self, payload: NotificationPayload) -> ChannelResult:
        """Send through the transport with the operation timeout."""
        try:
            return await asyncio.wait_for(
                self.transport.send(payload),
                timeout=self.settings.operation_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Email to %s timed out", payload.recipient_email)
            return self.transport.create_failure_result(
                f"Email transport timed out after {self.settings.operation_timeout_seconds}s"
            )

    async def _deliver(
        self,
        user_id: str,
        record_id: str,
        recipient: Recipient,
        rendered: RenderedEmail,
        training_assignment_id: str | None = None,
        audit_schedule_id: str | None = None,
    ) -> DeliveryOutcome:
        log = EmailDispatchLog(
            recipient_email=recipient.email,
            recipient_role=recipient.role.value,
            user_id=user_id,
            template_type=rendered.template.value,
            subject=rendered.subject,
            content=rendered.text,
            html_content=rendered.html,
            status=EmailStatus.PENDING.value,
            kpi_record_id=record_id,
            training_assignment_id=training_assignment_id,
            audit_schedule_id=audit_schedule_id,
            retry_count=0,
            max_retries=self.settings.email_max_retries,
        )
        self._db.add(log)
        await self._db.commit()

        payload = NotificationPayload(
            notification_type=rendered.template.value,
            title=rendered.subject,
            message=rendered.text,
            recipient_id=recipient.user_id,
            recipient_email=recipient.email,
            recipient_name=recipient.name,
            html=rendered.html,
            data={"kpi_record_id": record_id, "email_log_id": log.id},
        )

        try:
            result = await self._send(payload)
        except Exception as e:
            logger.error("Email transport raised for %s: %s", recipient.email, str(e), exc_info=True)
            result = self.transport.create_failure_result(str(e))

        if result.status == DeliveryStatus.SKIPPED:
            # Transport disabled: the attempt still counts as failed
            log.mark_failed(result.error_message or "Email transport skipped the message")
        elif result.succeeded:
            log.mark_sent()
        else:
            log.mark_failed(result.error_message or "Unknown email error")
        await self._db.commit()

        return DeliveryOutcome(
            recipient_email=recipient.email,
            role=recipient.role.value,
            status=log.status,
            email_log_id=log.id,
            error=log.error_message,
        )

    async def _deliver_all(
        self,
        user_id: str,
        record_id: str,
        recipients: list[Recipient],
        rendered: RenderedEmail,
        training_assignment_id: str | None = None,
        audit_schedule_id: str | None = None,
    ) -> list[DeliveryOutcome]:
        outcomes = []
        for recipient in recipients:
            try:
                outcome = await self._deliver(
                    user_id,
                    record_id,
                    recipient,
                    rendered,
                    training_assignment_id=training_assignment_id,
                    audit_schedule_id=audit_schedule_id,
                )
            except Exception as e:
                error_msg = f"Failed to notify {recipient.email}: {str(e)}"
                logger.error(error_msg, exc_info=True)
                await self._db.rollback()
                outcome = DeliveryOutcome(
                    recipient_email=recipient.email,
                    role=recipient.role.value,
                    status=EmailStatus.FAILED.value,
                    error=error_msg,
                )
            outcomes.append(outcome)
        return outcomes

    # =========================================================================
    # Execution
    # =========================================================================

    async def _execute_directive(
        self,
        user: UserIdentity,
        record_id: str,
        period: str,
        context: EmailContext,
        directive: TriggerDirective,
    ) -> DirectiveOutcome:
        outcome = DirectiveOutcome(directive=directive)

        try:
            linked = await self._create_linked_record(user.id, record_id, period, directive)
            await self._db.commit()
        except Exception as e:
            outcome.error = f"Failed to create {directive.action} record: {str(e)}"
            logger.error(outcome.error, exc_info=True)
            await self._db.rollback()
            return outcome

        if linked is not None:
            outcome.linked_record_id = linked.id

        try:
            recipients = await self.identity.resolve_recipients(user, directive.recipients)
        except Exception as e:
            outcome.error = f"Failed to resolve recipients for {directive.action}: {str(e)}"
            logger.error(outcome.error, exc_info=True)
            return outcome

        outcome.deliveries = await self._deliver_all(
            user.id,
            record_id,
            recipients,
            render_directive_email(directive, context),
            training_assignment_id=linked.id if isinstance(linked, TrainingAssignment) else None,
            audit_schedule_id=linked.id if isinstance(linked, AuditSchedule) else None,
        )
        return outcome

    async def _send_summary(
        self,
        user: UserIdentity,
        record_id: str,
        context: EmailContext,
        directives: list[TriggerDirective],
    ) -> list[DeliveryOutcome]:
        roles = [RecipientRole(role) for role in self.settings.summary_email_roles]
        recipients = await self.identity.resolve_recipients(user, roles)
        return await self._deliver_all(
            user.id,
            record_id,
            recipients,
            render_summary_email(directives, context),
        )

    async def _notify_user(
        self,
        user: UserIdentity,
        record_id: str,
        context: EmailContext,
        report: ExecutionReport,
    ) -> None:
        priority = notification_priority(report.directives)
        report.notification_priority = priority.value

        executed = [o for o in report.directives if o.executed]
        if executed:
            actions = ", ".join(o.directive.action for o in executed)
            message = (
                f"Your KPI score for {context.period} is {context.overall_score} "
                f"({context.rating}). Actions: {actions}."
            )
        else:
            message = (
                f"Your KPI score for {context.period} is {context.overall_score} "
                f"({context.rating})."
            )

        payload = NotificationPayload(
            notification_type="kpi_score",
            title=f"KPI Score Update: {context.period}",
            message=message,
            recipient_id=user.id,
            priority=priority.value,
            sender=self.settings.notification_sender,
            data={
                "kpi_record_id": record_id,
                "period": context.period,
                "overall_score": context.overall_score,
                "rating": context.rating,
                "actions": [o.directive.action for o in executed],
                "linked_records": [o.linked_record_id for o in executed if o.linked_record_id],
            },
        )

        result = await InAppChannel(self._db).send(payload)
        if result.succeeded:
            await self._db.commit()
            report.notification_id = result.message_id
        else:
            await self._db.rollback()
            report.errors.append(result.error_message or "Failed to create notification")

    async def execute(
        self,
        user: UserIdentity,
        record: KPIRecord,
        directives: list[TriggerDirective],
    ) -> ExecutionReport:
        """Execute directives for a KPI record.

        Args:
            user: The evaluated user.
            record: The record the directives were derived from.
            directives: Directives in rule engine order.

        Returns:
            ExecutionReport with per-directive and per-recipient outcomes.
        """
        # Rollbacks expire ORM state, so read everything needed up front
        record_id = record.id
        context = EmailContext(
            user_name=user.name,
            employee_code=user.employee_code,
            period=record.period,
            overall_score=record.overall_score,
            rating=record.rating,
        )
        report = ExecutionReport(record_id=record_id, user_id=user.id)

        for directive in directives:
            outcome = await self._execute_directive(
                user, record_id, context.period, context, directive
            )
            if outcome.error:
                report.errors.append(outcome.error)
            report.directives.append(outcome)

        if self.settings.summary_email_enabled:
            try:
                report.summary_deliveries = await self._send_summary(
                    user, record_id, context, directives
                )
            except Exception as e:
                error_msg = f"Failed to send score summary: {str(e)}"
                logger.error(error_msg, exc_info=True)
                report.errors.append(error_msg)

        try:
            await self._notify_user(user, record_id, context, report)
        except Exception as e:
            error_msg = f"Failed to create notification: {str(e)}"
            logger.error(error_msg, exc_info=True)
            await self._db.rollback()
            report.errors.append(error_msg)

        await self._db.refresh(record)
        for outcome in report.directives:
            record.append_audit(
                f"directive_{'executed' if outcome.executed else 'failed'}",
                self.settings.notification_sender,
                {
                    "action": outcome.directive.action,
                    "rule": outcome.directive.rule,
                    "justification": outcome.directive.justification,
                    "linked_record_id": outcome.linked_record_id,
                    "emails_sent": sum(1 for d in outcome.deliveries if d.sent),
                    "emails_failed": sum(1 for d in outcome.deliveries if not d.sent),
                    "error": outcome.error,
                },
            )
        await self._db.flush()

        logger.info(
            "Executed %d directives for record %s: emails sent=%d failed=%d errors=%d",
            len(report.directives),
            record_id,
            report.emails_sent,
            report.emails_failed,
            len(report.errors),
        )
        return report

    async def retry_failed_emails(self, limit: int = 50) -> dict[str, int]:
        """Re-send failed emails that still have retries left.

        Returns:
            Counts of attempted, sent and failed retries.
        """
        result = await self._db.execute(
            select(EmailDispatchLog)
            .where(
                EmailDispatchLog.status == EmailStatus.FAILED.value,
                EmailDispatchLog.retry_count < EmailDispatchLog.max_retries,
            )
            .order_by(EmailDispatchLog.created_at)
            .limit(limit)
        )
        logs = list(result.scalars().all())
        stats = {"attempted": 0, "sent": 0, "failed": 0}

        for log in logs:
            stats["attempted"] += 1
            payload = NotificationPayload(
                notification_type=log.template_type,
                title=log.subject,
                message=log.content,
                html=log.html_content,
                recipient_id=log.user_id,
                recipient_email=log.recipient_email,
                data={"kpi_record_id": log.kpi_record_id, "email_log_id": log.id},
            )
            try:
                send_result = await self._send(payload)
            except Exception as e:
                logger.error("Retry of email %s raised: %s", log.id, str(e), exc_info=True)
                send_result = self.transport.create_failure_result(str(e))

            if send_result.succeeded:
                log.mark_sent()
                stats["sent"] += 1
            else:
                log.mark_failed(send_result.error_message or "Unknown email error")
                stats["failed"] += 1
            await self._db.commit()

        if logs:
            logger.info(
                "Retried %d failed emails: sent=%d failed=%d",
                stats["attempted"],
                stats["sent"],
                stats["failed"],
            )
        return stats
