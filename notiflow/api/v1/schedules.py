# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Schedule API endpoints.

This module provides endpoints for recurring notification definitions:
- POST / - Define a schedule
- GET / - List schedules
- GET /stats - Counts per status and upcoming executions
- GET /{schedule_id} - Get a schedule
- PUT /{schedule_id}/timing - Replace a schedule's timing
- POST /{schedule_id}/pause - Pause a schedule
- POST /{schedule_id}/resume - Resume a schedule
- POST /{schedule_id}/cancel - Cancel a schedule
- DELETE /{schedule_id} - Delete a schedule and its history
- GET /{schedule_id}/executions - Execution history
"""

import logging
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Response, status

from notiflow.api.dependencies import PipelineDep
from notiflow.domains.scheduling.service import (
    ScheduleError,
    ScheduleNotFoundError,
    ScheduleStateError,
    ScheduleValidationError,
)
from notiflow.infrastructure.database.models import ScheduleStatus
from notiflow.infrastructure.notifications.templates import TemplateValidationError
from notiflow.models.schedule import (
    ScheduleDefinitionCreate,
    ScheduleDefinitionResponse,
    ScheduleExecutionResponse,
    SchedulerStats,
    ScheduleUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_http(error: ScheduleError) -> HTTPException:
    """Map a scheduler error to an HTTP error."""
    if isinstance(error, ScheduleNotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, ScheduleStateError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return HTTPException(status_code=code, detail=error.message)


@router.post(
    "",
    response_model=ScheduleDefinitionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Define schedule",
)
async def create_schedule(
    data: ScheduleDefinitionCreate, pipeline: PipelineDep
) -> ScheduleDefinitionResponse:
    try:
        definition = await pipeline.define_recurring(data)
    except (ScheduleValidationError, TemplateValidationError) as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)
    return ScheduleDefinitionResponse.model_validate(definition)


@router.get("", response_model=list[ScheduleDefinitionResponse], summary="List schedules")
async def list_schedules(
    pipeline: PipelineDep,
    schedule_status: Annotated[
        ScheduleStatus | None, Query(alias="status", description="Filter by status")
    ] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> list[ScheduleDefinitionResponse]:
    definitions = await pipeline.scheduler.list_definitions(
        status=schedule_status.value if schedule_status else None,
        limit=limit,
    )
    return [ScheduleDefinitionResponse.model_validate(d) for d in definitions]


@router.get("/stats", response_model=SchedulerStats, summary="Scheduler statistics")
async def get_schedule_stats(pipeline: PipelineDep) -> SchedulerStats:
    return await pipeline.scheduler.get_stats()


@router.get("/{schedule_id}", response_model=ScheduleDefinitionResponse, summary="Get schedule")
async def get_schedule(schedule_id: str, pipeline: PipelineDep) -> ScheduleDefinitionResponse:
    try:
        definition = await pipeline.scheduler.get_definition(schedule_id)
    except ScheduleError as e:
        raise _to_http(e)
    return ScheduleDefinitionResponse.model_validate(definition)


@router.put(
    "/{schedule_id}/timing",
    response_model=ScheduleDefinitionResponse,
    summary="Update schedule timing",
)
async def update_schedule_timing(
    schedule_id: str, data: ScheduleUpdate, pipeline: PipelineDep
) -> ScheduleDefinitionResponse:
    try:
        definition = await pipeline.scheduler.update_schedule(schedule_id, data)
    except ScheduleError as e:
        raise _to_http(e)
    return ScheduleDefinitionResponse.model_validate(definition)


@router.post(
    "/{schedule_id}/pause",
    response_model=ScheduleDefinitionResponse,
    summary="Pause schedule",
)
async def pause_schedule(schedule_id: str, pipeline: PipelineDep) -> ScheduleDefinitionResponse:
    try:
        definition = await pipeline.scheduler.pause(schedule_id)
    except ScheduleError as e:
        raise _to_http(e)
    return ScheduleDefinitionResponse.model_validate(definition)


@router.post(
    "/{schedule_id}/resume",
    response_model=ScheduleDefinitionResponse,
    summary="Resume schedule",
)
async def resume_schedule(schedule_id: str, pipeline: PipelineDep) -> ScheduleDefinitionResponse:
    try:
        definition = await pipeline.scheduler.resume(schedule_id)
    except ScheduleError as e:
        raise _to_http(e)
    return ScheduleDefinitionResponse.model_validate(definition)


@router.post(
    "/{schedule_id}/cancel",
    response_model=ScheduleDefinitionResponse,
    summary="Cancel schedule",
)
async def cancel_schedule(schedule_id: str, pipeline: PipelineDep) -> ScheduleDefinitionResponse:
    try:
        definition = await pipeline.scheduler.cancel(schedule_id)
    except ScheduleError as e:
        raise _to_http(e)
    return ScheduleDefinitionResponse.model_validate(definition)


@router.delete(
    "/{schedule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete schedule",
)
async def delete_schedule(schedule_id: str, pipeline: PipelineDep) -> Response:
    try:
        await pipeline.scheduler.delete(schedule_id)
    except ScheduleError as e:
        raise _to_http(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{schedule_id}/executions",
    response_model=list[ScheduleExecutionResponse],
    summary="Execution history",
)
async def list_schedule_executions(
    schedule_id: str,
    pipeline: PipelineDep,
    limit: Annotated[int, Query(ge=1, le=200)] = 20,
) -> list[ScheduleExecutionResponse]:
    try:
        executions = await pipeline.scheduler.list_executions(schedule_id, limit=limit)
    except ScheduleError as e:
        raise _to_http(e)
    return [ScheduleExecutionResponse.model_validate(e) for e in executions]
