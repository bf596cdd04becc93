# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Health check router."""
from fastapi import APIRouter, Depends

from copilot_hub.deps import get_runtime, get_settings
from copilot_hub.models.api import HealthResponse

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("", response_model=HealthResponse)
async def health_check(settings=Depends(get_settings), runtime=Depends(get_runtime)) -> HealthResponse:
    """Basic health check endpoint."""

    # Check service dependencies
    services = {}

    config = await runtime.config_cache.get()
    for name in ("openai", "deepseek", "gemini"):
        credentials = config.provider(name)
        services[name] = "configured" if credentials and credentials.api_key else "not_configured"

    services["redis"] = "enabled" if runtime.redis_client is not None else "disabled"
    services["expiry_sweep"] = "running" if runtime.sweep_task.running else "stopped"

    return HealthResponse(status="healthy", version=settings.api_version, services=services)
