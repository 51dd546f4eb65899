# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Queue request and response models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from notiflow.models.notification import NotificationPayload


class EnqueueOptions(BaseModel):
    """Optional parameters for enqueue.

    Attributes:
        max_attempts: Retry cap for the item.
        delay_minutes: Minutes to wait before the item becomes eligible.
        batch_id: Correlates items enqueued together.
        batch_size: Number of items in the batch.
    """

    max_attempts: int | None = Field(default=None, ge=1, le=20)
    delay_minutes: float = Field(default=0, ge=0)
    batch_id: str | None = None
    batch_size: int = Field(default=1, ge=1)


class EnqueueRequest(BaseModel):
    """API request to enqueue a notification."""

    notification_id: str = Field(..., min_length=1, max_length=100)
    recipient_ids: list[str] = Field(..., min_length=1)
    payload: NotificationPayload
    options: EnqueueOptions = Field(default_factory=EnqueueOptions)
    scheduled_for: datetime | None = None


class EnqueueResponse(BaseModel):
    """Acknowledgement returned when work is accepted."""

    queue_item_id: str
    status: str = "pending"


class QueueItemResponse(BaseModel):
    """Read model of a queue item."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    notification_id: str
    recipient_ids: list[str]
    payload: dict[str, Any]
    status: str
    attempts: int
    max_attempts: int
    not_before: datetime
    scheduled_for: datetime | None = None
    created_at: datetime
    updated_at: datetime
    processed_at: datetime | None = None
    completed_at: datetime | None = None
    last_error: str | None = None
    error_history: list[dict[str, Any]] = Field(default_factory=list)
    delivery_results: dict[str, Any] = Field(default_factory=dict)
    batch_id: str | None = None
    batch_size: int = 1
    source: str = "direct"


class QueueItemListResponse(BaseModel):
    """List of queue items."""

    items: list[QueueItemResponse]
    total: int


class QueueStats(BaseModel):
    """Aggregate queue statistics.

    Attributes:
        total_in_queue: Number of items in every state.
        pending: Items waiting for their next attempt.
        processing: Items currently claimed.
        sent: Items delivered.
        failed: Items that exhausted their retries.
        cancelled: Items cancelled by an operator.
        paused: Whether the processor is paused.
        average_processing_time_seconds: Mean claim-to-completion time of sent items.
        throughput_per_hour: Items completed during the last hour.
        error_rate_percent: Failed items as a share of all items.
    """

    total_in_queue: int = 0
    pending: int = 0
    processing: int = 0
    sent: int = 0
    failed: int = 0
    cancelled: int = 0
    paused: bool = False
    average_processing_time_seconds: float = 0.0
    throughput_per_hour: int = 0
    error_rate_percent: float = 0.0


class PurgeResponse(BaseModel):
    """Result of a retention purge."""

    deleted: int
