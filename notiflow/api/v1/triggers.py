# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Event trigger API endpoints.

- POST / - Create a trigger
- GET / - List triggers
- GET /{trigger_id} - Get a trigger
- POST /{trigger_id}/fire - Fire one trigger
- POST /events/{event} - Fire every active trigger for an event
"""

import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status

from notiflow.api.dependencies import PipelineDep
from notiflow.domains.queue.store import QueueError
from notiflow.domains.scheduling.triggers import TriggerNotFoundError
from notiflow.models.schedule import (
    FireTriggerRequest,
    FireTriggerResponse,
    TriggerCreate,
    TriggerResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=TriggerResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create trigger",
)
async def create_trigger(data: TriggerCreate, pipeline: PipelineDep) -> TriggerResponse:
    trigger = await pipeline.triggers.create_trigger(data)
    return TriggerResponse.model_validate(trigger)


@router.get("", response_model=list[TriggerResponse], summary="List triggers")
async def list_triggers(
    pipeline: PipelineDep,
    event: Annotated[str | None, Query(description="Filter by event name")] = None,
    active_only: Annotated[bool, Query(description="Only active triggers")] = False,
) -> list[TriggerResponse]:
    triggers = await pipeline.triggers.list_triggers(event=event, active_only=active_only)
    return [TriggerResponse.model_validate(t) for t in triggers]


@router.get("/{trigger_id}", response_model=TriggerResponse, summary="Get trigger")
async def get_trigger(trigger_id: str, pipeline: PipelineDep) -> TriggerResponse:
    try:
        trigger = await pipeline.triggers.get_trigger(trigger_id)
    except TriggerNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    return TriggerResponse.model_validate(trigger)


@router.post(
    "/{trigger_id}/fire",
    response_model=FireTriggerResponse,
    summary="Fire trigger",
)
async def fire_trigger(
    trigger_id: str, data: FireTriggerRequest, pipeline: PipelineDep
) -> FireTriggerResponse:
    try:
        return await pipeline.triggers.fire_trigger(trigger_id, data.event_data, data.user_id)
    except TriggerNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except QueueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)


@router.post(
    "/events/{event}",
    response_model=list[FireTriggerResponse],
    summary="Fire event",
)
async def fire_event(
    event: str, data: FireTriggerRequest, pipeline: PipelineDep
) -> list[FireTriggerResponse]:
    responses = await pipeline.triggers.fire_event(event, data.event_data, data.user_id)
    logger.info(
        "Event %s fired %d of %d trigger(s)",
        event,
        sum(1 for r in responses if r.fired),
        len(responses),
    )
    return responses
