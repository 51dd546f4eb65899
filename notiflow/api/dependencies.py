# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

The pipeline is created once by the application lifespan and stored on
app.state; endpoints receive it through get_pipeline.

Example:
    @router.get("/stats")
    async def get_stats(pipeline: PipelineDep) -> QueueStats:
        return await pipeline.get_stats()
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from notiflow.pipeline import NotificationPipeline


def get_pipeline(request: Request) -> NotificationPipeline:
    """Return the application's pipeline.

    Raises:
        HTTPException: 503 if the pipeline has not been started.
    """
    pipeline: NotificationPipeline | None = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Notification pipeline is not running",
        )
    return pipeline


PipelineDep = Annotated[NotificationPipeline, Depends(get_pipeline)]
