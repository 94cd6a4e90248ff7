# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Email content for KPI directives and score summaries.

Each builder returns the template kind, subject and plain text body.
HTML is a thin wrapper around the plain text.
"""

from dataclasses import dataclass
from html import escape

from kpisynapse.core.kpi.rules import (
    AuditDirective,
    RewardDirective,
    TrainingDirective,
    TriggerDirective,
    WarningDirective,
)
from kpisynapse.core.kpi.types import AuditType
from kpisynapse.infrastructure.database.models.notification import EmailTemplate

AUDIT_METHODS: dict[AuditType, str] = {
    AuditType.AUDIT_CALL: "Phone call audit with performance review",
    AuditType.CROSS_CHECK: "Cross-verification of last 3 months data",
    AuditType.DUMMY_AUDIT: "Dummy case audit to test performance",
    AuditType.ROOT_CAUSE_REVIEW: "Root-cause analysis of quality complaints",
    AuditType.CROSS_VERIFY_INSUFF: "Cross-verification of insufficient cases by another FE",
}


def audit_method(audit_type: AuditType) -> str:
    return AUDIT_METHODS.get(audit_type, "Standard audit procedure")


@dataclass(frozen=True)
class RenderedEmail:
    """Subject and bodies of one email."""

    template: EmailTemplate
    subject: str
    text: str

    @property
    def html(self) -> str:
        body = escape(self.text).replace("\n", "<br>")
        return (
            "<!DOCTYPE html><html><body style=\"font-family: Arial, sans-serif;\">"
            f"<h2>{escape(self.subject)}</h2><p>{body}</p></body></html>"
        )


@dataclass(frozen=True)
class EmailContext:
    """Facts about the evaluation shared by every email."""

    user_name: str
    employee_code: str | None
    period: str
    overall_score: int
    rating: str


def _header(context: EmailContext) -> list[str]:
    employee = f" ({context.employee_code})" if context.employee_code else ""
    return [
        f"Field executive: {context.user_name}{employee}",
        f"Period: {context.period}",
        f"KPI score: {context.overall_score} ({context.rating})",
        "",
    ]


def _humanize(value: str) -> str:
    return value.replace("_", " ")


def render_directive_email(directive: TriggerDirective, context: EmailContext) -> RenderedEmail:
    """Render the email announcing one directive."""
    lines = _header(context)

    if isinstance(directive, TrainingDirective):
        lines += [
            f"Training assigned: {_humanize(directive.training_type.value)}",
            f"Priority: {directive.priority.value}",
            f"Reason: {directive.justification}",
        ]
        return RenderedEmail(
            EmailTemplate.TRAINING,
            f"Training Required: {directive.training_type.value}",
            "\n".join(lines),
        )

    if isinstance(directive, AuditDirective):
        lines += [
            f"Audit scheduled: {_humanize(directive.audit_type.value)}",
            f"Method: {audit_method(directive.audit_type)}",
            f"Priority: {directive.priority.value}",
            f"Reason: {directive.justification}",
        ]
        return RenderedEmail(
            EmailTemplate.AUDIT,
            f"Audit Notification: {directive.audit_type.value}",
            "\n".join(lines),
        )

    if isinstance(directive, WarningDirective):
        lines += [f"Reason: {directive.justification}"]
        if directive.improvement_areas:
            lines += ["", "Areas requiring improvement:"]
            lines += [f"- {area}" for area in directive.improvement_areas]
        return RenderedEmail(
            EmailTemplate.WARNING,
            "Performance Warning Notice",
            "\n".join(lines),
        )

    if isinstance(directive, RewardDirective):
        lines += [directive.justification, "", "Thank you for your outstanding work."]
        return RenderedEmail(
            EmailTemplate.REWARD,
            "Congratulations: Outstanding Performance",
            "\n".join(lines),
        )

    raise TypeError(f"Unsupported directive: {type(directive).__name__}")


def render_summary_email(
    directives: list[TriggerDirective],
    context: EmailContext,
) -> RenderedEmail:
    """Render the score summary email listing every justification."""
    lines = _header(context)
    if directives:
        lines.append("Actions triggered:")
        lines += [f"- {d.action}: {d.justification}" for d in directives]
    else:
        lines.append("No actions were triggered for this period.")

    return RenderedEmail(
        EmailTemplate.KPI_SCORE,
        f"KPI Score Update: {context.period}",
        "\n".join(lines),
    )
