# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification infrastructure for KPI automation.

- channels: In-app notification records and SMTP email delivery
- templates: Subjects and bodies of KPI emails
"""

from kpisynapse.infrastructure.notifications.channels import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    DeliveryStatus,
    EmailChannel,
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

__all__ = [
    "BaseChannel",
    "ChannelResult",
    "ChannelType",
    "DeliveryStatus",
    "EmailChannel",
    "EmailContext",
    "InAppChannel",
    "NotificationPayload",
    "RenderedEmail",
    "audit_method",
    "render_directive_email",
    "render_summary_email",
]
