# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Email notification channel using async SMTP.

This channel sends KPI emails using aiosmtplib. It supports both plain
text and HTML bodies.

Configuration comes from SMTPSettings (SMTP_* environment variables).
When the configuration is incomplete every send is reported as skipped.
"""

import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid

import aiosmtplib

from kpisynapse.core.config.settings import SMTPSettings
from kpisynapse.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    NotificationPayload,
)

logger = logging.getLogger(__name__)


class EmailChannel(BaseChannel):
    """Email channel delivering one message to one address via SMTP."""

    def __init__(self, settings: SMTPSettings) -> None:
        """Initialize the email channel.

        Args:
            settings: SMTP configuration.
        """
        super().__init__()
        self._settings = settings
        if not settings.is_configured:
            self.logger.warning(
                "Email notifications disabled: SMTP_HOST, SMTP_USERNAME, "
                "SMTP_PASSWORD, or SMTP_FROM_EMAIL not set"
            )

    @property
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        return ChannelType.EMAIL

    async def send(self, payload: NotificationPayload) -> ChannelResult:
        """Send email notification via SMTP.

        Args:
            payload: The notification payload.

        Returns:
            ChannelResult with delivery status.
        """
        if not self._settings.is_configured:
            return self.create_skipped_result("SMTP configuration incomplete")

        if not payload.recipient_email:
            return self.create_skipped_result("No recipient email address")

        message = self._build_email_message(payload)

        try:
            await aiosmtplib.send(
                message,
                hostname=self._settings.host,
                port=self._settings.port,
                username=self._settings.username,
                password=self._settings.password.get_secret_value()
                if self._settings.password
                else None,
                start_tls=self._settings.use_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            self.logger.error(
                "Failed to send email to %s: %s",
                payload.recipient_email,
                str(e),
            )
            return self.create_failure_result(
                f"SMTP error: {str(e)}",
                metadata={"recipient": payload.recipient_email},
            )

        self.logger.info("Email sent to %s: %s", payload.recipient_email, payload.title)
        return self.create_success_result(
            message_id=message["Message-ID"],
            metadata={"recipient": payload.recipient_email},
        )

    def _build_email_message(self, payload: NotificationPayload) -> MIMEMultipart:
        """Build MIME email message.

        Args:
            payload: Notification payload.

        Returns:
            MIMEMultipart message ready to send.
        """
        message = MIMEMultipart("alternative")

        message["From"] = f"{self._settings.from_name} <{self._settings.from_email}>"
        message["To"] = payload.recipient_email or ""
        message["Subject"] = payload.title
        message["Message-ID"] = make_msgid(domain=(self._settings.from_email or "").split("@")[-1] or None)

        message.attach(MIMEText(payload.message, "plain", "utf-8"))
        if payload.html:
            message.attach(MIMEText(payload.html, "html", "utf-8"))

        return message
