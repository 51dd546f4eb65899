# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Health check endpoints."""

import logging
import time
from datetime import datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from notiflow import __version__
from notiflow.utils.datetime import utc_now

logger = logging.getLogger(__name__)

router = APIRouter()

# Track server start time for uptime calculation
_server_start_time = time.time()


class ComponentHealth(BaseModel):
    """Individual component health status."""
    status: str = Field(description="Component status")
    latency_ms: float | None = Field(None, description="Response latency in ms")
    message: str | None = Field(None, description="Additional status message")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(description="Overall health status")
    timestamp: datetime = Field(description="Current server timestamp")
    version: str = Field(description="API version")
    environment: str = Field(description="Deployment environment")
    uptime_seconds: int = Field(description="Server uptime in seconds")
    processing_paused: bool = Field(False, description="Whether queue processing is paused")
    components: dict[str, ComponentHealth] = Field(default_factory=dict)


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Report overall health and the database's reachability."""
    settings = request.app.state.settings
    pipeline = getattr(request.app.state, "pipeline", None)

    components: dict[str, ComponentHealth] = {}
    paused = False
    if pipeline is None:
        components["pipeline"] = ComponentHealth(status="unhealthy", message="Not running")
    else:
        paused = pipeline.processor.is_paused
        start = time.time()
        reachable = await pipeline.database.check_connection()
        latency = (time.time() - start) * 1000
        if reachable:
            components["database"] = ComponentHealth(status="healthy", latency_ms=round(latency, 2))
        else:
            logger.error("Database health check failed")
            components["database"] = ComponentHealth(status="unhealthy", message="Unreachable")

    overall = "healthy" if all(c.status == "healthy" for c in components.values()) else "unhealthy"
    return HealthResponse(
        status=overall,
        timestamp=utc_now(),
        version=__version__,
        environment=settings.environment,
        uptime_seconds=int(time.time() - _server_start_time),
        processing_paused=paused,
        components=components,
    )
