# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Queue API endpoints.

This module provides endpoints for submitting and operating queued work:
- POST /items - Enqueue a notification
- GET /items - List queue items
- GET /items/{item_id} - Get one queue item
- POST /items/{item_id}/cancel - Cancel a pending or processing item
- POST /items/{item_id}/retry - Make an item eligible immediately
- GET /stats - Queue statistics
- POST /pause - Pause processing
- POST /resume - Resume processing
- POST /purge - Delete terminal items older than a number of days

Example:
    POST /api/v1/queue/items
    {
        "notification_id": "invoice-ready",
        "recipient_ids": ["member-1"],
        "payload": {"title": "Invoice", "message": "Your invoice is ready"}
    }
"""

import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from notiflow.api.dependencies import PipelineDep
from notiflow.core.exceptions import ConfigurationError
from notiflow.domains.queue.store import (
    InvalidTransitionError,
    QueueError,
    QueueItemNotFoundError,
)
from notiflow.infrastructure.database.models import QueueStatus
from notiflow.models.queue import (
    EnqueueRequest,
    EnqueueResponse,
    PurgeResponse,
    QueueItemListResponse,
    QueueItemResponse,
    QueueStats,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/items",
    response_model=EnqueueResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Enqueue notification",
    description="Accept a notification for asynchronous delivery.",
)
async def enqueue_notification(data: EnqueueRequest, pipeline: PipelineDep) -> EnqueueResponse:
    """Enqueue a notification.

    Raises:
        HTTPException: 422 if no requested channel has a configured provider.
    """
    try:
        if data.scheduled_for is not None:
            item_id = await pipeline.schedule_once(
                data.notification_id,
                data.recipient_ids,
                data.payload,
                data.scheduled_for,
                data.options,
            )
        else:
            item_id = await pipeline.enqueue(
                data.notification_id,
                data.recipient_ids,
                data.payload,
                data.options,
            )
    except (ConfigurationError, QueueError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.message,
        )

    return EnqueueResponse(queue_item_id=item_id)


@router.get(
    "/items",
    response_model=QueueItemListResponse,
    summary="List queue items",
)
async def list_items(
    pipeline: PipelineDep,
    item_status: Annotated[
        QueueStatus | None, Query(alias="status", description="Filter by status")
    ] = None,
    limit: Annotated[int, Query(ge=1, le=500, description="Maximum results")] = 50,
) -> QueueItemListResponse:
    items = await pipeline.list_items(
        status=item_status.value if item_status else None,
        limit=limit,
    )
    return QueueItemListResponse(
        items=[QueueItemResponse.model_validate(i) for i in items],
        total=len(items),
    )


@router.get(
    "/items/{item_id}",
    response_model=QueueItemResponse,
    summary="Get queue item",
)
async def get_item(item_id: str, pipeline: PipelineDep) -> QueueItemResponse:
    try:
        item = await pipeline.store.get(item_id)
    except QueueItemNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    return QueueItemResponse.model_validate(item)


@router.post(
    "/items/{item_id}/cancel",
    response_model=QueueItemResponse,
    summary="Cancel queue item",
    description="Cancel a pending or processing item. Sends already in flight are not interrupted.",
)
async def cancel_item(item_id: str, pipeline: PipelineDep) -> QueueItemResponse:
    try:
        item = await pipeline.cancel(item_id)
    except QueueItemNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    return QueueItemResponse.model_validate(item)


@router.post(
    "/items/{item_id}/retry",
    response_model=QueueItemResponse,
    summary="Retry queue item",
    description="Return a failed item to pending, or make a pending item eligible now.",
)
async def retry_item(item_id: str, pipeline: PipelineDep) -> QueueItemResponse:
    try:
        item = await pipeline.retry(item_id)
    except QueueItemNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    return QueueItemResponse.model_validate(item)


@router.get("/stats", response_model=QueueStats, summary="Queue statistics")
async def get_stats(pipeline: PipelineDep) -> QueueStats:
    return await pipeline.get_stats()


@router.post("/pause", response_model=QueueStats, summary="Pause processing")
async def pause_processing(pipeline: PipelineDep) -> QueueStats:
    pipeline.pause()
    return await pipeline.get_stats()


@router.post("/resume", response_model=QueueStats, summary="Resume processing")
async def resume_processing(pipeline: PipelineDep) -> QueueStats:
    pipeline.resume()
    return await pipeline.get_stats()


@router.post("/purge", response_model=PurgeResponse, summary="Purge old items")
async def purge_items(
    pipeline: PipelineDep,
    days: Annotated[int, Query(ge=0, description="Retention window in days")] = 7,
) -> PurgeResponse:
    deleted = await pipeline.purge_older_than(days)
    logger.info("Purge requested via API: %d item(s) deleted", deleted)
    return PurgeResponse(deleted=deleted)
