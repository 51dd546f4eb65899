# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the application factory for the Notiflow API. The
pipeline is built and started by the lifespan and stopped on shutdown.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from notiflow import __version__
from notiflow.api.routes import health
from notiflow.api.v1 import router as v1_router
from notiflow.core.config import Settings, get_settings
from notiflow.pipeline import NotificationPipeline
from notiflow.utils.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Uses the pipeline already placed on app.state when there is one,
    otherwise builds it from settings. Worker timers only run when
    API_RUN_WORKERS is enabled.

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.
    """
    settings: Settings = app.state.settings
    logger.info(
        "Starting Notiflow API (environment=%s, debug=%s)",
        settings.environment,
        settings.debug,
    )

    # =========================================================================
    # Startup
    # =========================================================================

    pipeline: NotificationPipeline | None = getattr(app.state, "pipeline", None)
    if pipeline is None:
        pipeline = NotificationPipeline.from_settings(settings)
        app.state.pipeline = pipeline

    await pipeline.start(run_workers=settings.api.run_workers)

    yield

    # =========================================================================
    # Shutdown
    # =========================================================================

    await pipeline.stop()
    logger.info("Shutting down Notiflow API")


def create_app(
    settings: Settings | None = None,
    pipeline: NotificationPipeline | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment when omitted.
        pipeline: Prebuilt pipeline; built from settings at startup when omitted.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(
        title="Notiflow API",
        description="Asynchronous multi-channel notification delivery",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # =========================================================================
    # State
    # =========================================================================
    app.state.settings = settings
    if pipeline is not None:
        app.state.pipeline = pipeline

    # =========================================================================
    # Routes
    # =========================================================================
    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router)

    return app
