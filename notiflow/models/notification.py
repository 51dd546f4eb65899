# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification payload and recipient models."""

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from notiflow.infrastructure.notifications.channels.base import ChannelType

DEFAULT_CHANNELS = [ChannelType.CHAT, ChannelType.EMAIL, ChannelType.IN_APP]


class NotificationPayload(BaseModel):
    """Content and routing hints of one logical notification.

    Attributes:
        title: Notification title (email subject, chat heading).
        message: Message body.
        channels: Channels the notification may use. Chat and email are
            tried in that order; in_app is the last resort.
        notification_type: Free-form type tag shown in the inbox.
        priority: Informational priority tag; never used for ordering.
        data: Additional data stored with in-app records.
    """

    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    channels: list[ChannelType] = Field(default_factory=lambda: list(DEFAULT_CHANNELS))
    notification_type: str = Field(default="general", max_length=50)
    priority: Literal["low", "normal", "high", "urgent"] = "normal"
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("channels")
    @classmethod
    def dedupe_channels(cls, value: list[ChannelType]) -> list[ChannelType]:
        """Reject an empty channel set and drop duplicates."""
        if not value:
            raise ValueError("At least one channel is required")
        return list(dict.fromkeys(value))


@dataclass(frozen=True)
class Recipient:
    """A recipient reference with contact fields resolved at send time.

    Attributes:
        id: Opaque recipient reference stored in queue items.
        name: Display name.
        email: Email address, if known.
        chat_address: Chat transport address (phone number), if known.
    """

    id: str
    name: str = ""
    email: str | None = None
    chat_address: str | None = None
