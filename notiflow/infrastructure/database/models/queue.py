# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Queue store table.

One row per unit of dispatch work. Status, attempt counters and the
processing timestamps are written only by the queue store on behalf of
the processor and the operator controls.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from notiflow.infrastructure.database.models.base import (
    Base,
    JSONType,
    TimestampMixin,
    UTCDateTime,
    new_id,
)


class QueueStatus(str, Enum):
    """Lifecycle states of a queue item."""

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def terminal(cls) -> tuple["QueueStatus", ...]:
        """States an item never leaves without operator action."""
        return (cls.SENT, cls.FAILED, cls.CANCELLED)


class QueueItem(Base, TimestampMixin):
    """Persisted queue item."""

    __tablename__ = "queue_items"
    __table_args__ = (
        Index("idx_queue_items_due", "status", "not_before", "created_at"),
        Index("idx_queue_items_notification_id", "notification_id"),
        Index("idx_queue_items_batch_id", "batch_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    notification_id: Mapped[str] = mapped_column(String(100), nullable=False)
    recipient_ids: Mapped[list[Any]] = mapped_column(JSONType, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=QueueStatus.PENDING.value
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    not_before: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    scheduled_for: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_history: Mapped[list[Any]] = mapped_column(JSONType, nullable=False, default=list)
    delivery_results: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )

    batch_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    batch_size: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    source: Mapped[str] = mapped_column(String(50), nullable=False, default="direct")

    def __repr__(self) -> str:
        return f"<QueueItem {self.id} {self.status} attempts={self.attempts}/{self.max_attempts}>"
