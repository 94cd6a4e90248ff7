# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-app notification channel.

This channel creates notification records in the database
that are displayed within the application UI.
"""

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kpisynapse.infrastructure.database.models import Notification, new_id
from kpisynapse.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    NotificationPayload,
)


class InAppChannel(BaseChannel):
    """In-app notification channel bound to a database session."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the in-app channel.

        Args:
            session: Async database session the notification is added to.
        """
        super().__init__()
        self._session = session

    @property
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        return ChannelType.IN_APP

    async def send(self, payload: NotificationPayload) -> ChannelResult:
        """Create an in-app notification record.

        The record is flushed, not committed.

        Args:
            payload: The notification payload.

        Returns:
            ChannelResult with delivery status.
        """
        try:
            notification = Notification(
                id=new_id(),
                user_id=str(payload.recipient_id),
                notification_type=payload.notification_type,
                title=payload.title,
                message=payload.message,
                priority=payload.priority,
                sender=payload.sender,
                data=payload.data,
            )

            self._session.add(notification)
            await self._session.flush()

        except SQLAlchemyError as e:
            self.logger.error(
                "Failed to create in-app notification for user %s: %s",
                payload.recipient_id,
                str(e),
                exc_info=True,
            )
            return self.create_failure_result(f"Database error: {str(e)}")

        self.logger.info(
            "Created in-app notification %s for user %s",
            notification.id,
            payload.recipient_id,
        )
        return self.create_success_result(
            message_id=notification.id,
            metadata={"notification_id": notification.id},
        )
