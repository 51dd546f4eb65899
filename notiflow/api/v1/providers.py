# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Provider status endpoint."""

from typing import Any

from fastapi import APIRouter

from notiflow.api.dependencies import PipelineDep

router = APIRouter()


@router.get(
    "",
    summary="List providers",
    description="Every transport provider per channel with configuration, availability and cost.",
)
async def list_providers(pipeline: PipelineDep) -> dict[str, list[dict[str, Any]]]:
    return await pipeline.list_providers()
