# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-app notification channel.

This channel creates notification records in the database that are
displayed within the application UI. It is a local write rather than a
network call, which makes it the delivery floor: when every network
channel fails, the hybrid coordinator still leaves the recipient an
in-app record.
"""

from datetime import timedelta
from typing import Any

from notiflow.infrastructure.database.connection import Database, DatabaseError
from notiflow.infrastructure.database.models import InAppNotification
from notiflow.infrastructure.notifications.channels.base import (
    ChannelType,
    CostTier,
    SendOutcome,
    TransportAdapter,
)
from notiflow.utils.datetime import Clock, utc_now


class InAppChannel(TransportAdapter):
    """In-app notification channel.

    Creates rows in the in_app_notifications table. Each write uses its
    own short session so a failed network send elsewhere in the batch
    never rolls it back.
    """

    name = "in_app"
    channel = ChannelType.IN_APP
    priority = 0
    cost_tier = CostTier.FREE

    DEFAULT_EXPIRATION_DAYS = 30

    def __init__(
        self,
        database: Database,
        expiration_days: int = DEFAULT_EXPIRATION_DAYS,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the in-app channel.

        Args:
            database: Database holding the inbox table.
            expiration_days: Lifetime of created records.
            clock: Source of the current time.
        """
        super().__init__()
        self._database = database
        self._expiration_days = expiration_days
        self._clock = clock

    def is_configured(self) -> bool:
        return True

    async def send(self, to: str, message: str, title: str | None = None) -> SendOutcome:
        """Create an in-app notification record.

        Args:
            to: Recipient ID.
            message: Message body.
            title: Notification title.

        Returns:
            SendOutcome with the new record ID as message ID.
        """
        return await self.write(recipient_id=to, title=title or "", message=message)

    async def write(
        self,
        recipient_id: str,
        title: str,
        message: str,
        notification_type: str = "general",
        data: dict[str, Any] | None = None,
        is_fallback: bool = False,
    ) -> SendOutcome:
        """Create an in-app record with full notification metadata.

        Args:
            recipient_id: Recipient ID.
            title: Notification title.
            message: Message body.
            notification_type: Type tag shown in the inbox.
            data: Additional data stored with the record.
            is_fallback: Whether this record replaces a failed network delivery.

        Returns:
            SendOutcome with the new record ID as message ID.
        """
        now = self._clock()
        notification = InAppNotification(
            recipient_id=recipient_id,
            notification_type=notification_type,
            title=title,
            message=message,
            data=data or {},
            is_fallback=is_fallback,
            expires_at=now + timedelta(days=self._expiration_days),
            created_at=now,
        )

        try:
            async with self._database.session() as session:
                session.add(notification)
                await session.flush()
                notification_id = notification.id
        except DatabaseError as e:
            self.logger.error(
                "Failed to create in-app notification for %s: %s",
                recipient_id,
                str(e),
            )
            return self.create_failure_result(f"Database error: {e}")

        self.logger.info(
            "Created in-app notification %s for recipient %s",
            notification_id,
            recipient_id,
        )
        return self.create_success_result(
            message_id=notification_id,
            metadata={"is_fallback": is_fallback},
        )
