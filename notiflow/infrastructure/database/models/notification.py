# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-app notification inbox and contact directory tables."""

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from notiflow.infrastructure.database.models.base import (
    Base,
    JSONType,
    TimestampMixin,
    UTCDateTime,
    new_id,
)
from notiflow.utils.datetime import utc_now


class InAppNotification(Base):
    """Notification shown in the application's notification center.

    Written by the in-app channel. This is the delivery floor, so rows are
    created even when every network channel failed for the recipient.
    """

    __tablename__ = "in_app_notifications"
    __table_args__ = (
        Index("idx_in_app_notifications_recipient", "recipient_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    recipient_id: Mapped[str] = mapped_column(String(100), nullable=False)
    notification_type: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    is_fallback: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utc_now)


class Contact(Base, TimestampMixin):
    """Recipient directory entry used to resolve contact fields."""

    __tablename__ = "contacts"
    __table_args__ = (
        Index("idx_contacts_user_type", "user_type"),
        Index("idx_contacts_group_id", "group_id"),
    )

    id: Mapped[str] = mapped_column(String(100), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    user_type: Mapped[str] = mapped_column(String(50), nullable=False, default="member")
    group_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
