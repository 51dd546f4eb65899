# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

Modules:
    queue: Enqueue, inspect and operate queue items.
    schedules: Recurring schedule definitions.
    triggers: Event triggers.
    providers: Transport provider status.
"""

from fastapi import APIRouter

from notiflow.api.v1 import providers, queue, schedules, triggers

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

router.include_router(queue.router, prefix="/queue", tags=["Queue"])
router.include_router(schedules.router, prefix="/schedules", tags=["Schedules"])
router.include_router(triggers.router, prefix="/triggers", tags=["Triggers"])
router.include_router(providers.router, prefix="/providers", tags=["Providers"])

__all__ = ["router"]
