# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Administrative provider and billing settings."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from copilot_hub.database import get_db
from copilot_hub.deps import get_runtime
from copilot_hub.middleware.auth import require_admin
from copilot_hub.models import database as db_models
from copilot_hub.models.api.sessions_schema import AdminConfigResponse, AdminConfigUpdate
from copilot_hub.repositories import AdminSettingsRepository
from copilot_hub.services.ai_provider import normalize_provider

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin/settings", tags=["admin"])


async def _config_response(runtime) -> AdminConfigResponse:
    config = await runtime.config_cache.get()
    return AdminConfigResponse(
        default_ai_provider=config.default_ai_provider,
        openai_model=config.openai.model,
        deepseek_model=config.deepseek.model,
        gemini_model=config.gemini.model,
        openai_configured=bool(config.openai.api_key),
        deepseek_configured=bool(config.deepseek.api_key),
        gemini_configured=bool(config.gemini.api_key),
        session_grace_minutes=config.billing.grace_seconds // 60,
        session_hard_stop_enabled=config.billing.hard_stop_enabled,
    )


@router.get("", response_model=AdminConfigResponse)
async def get_admin_settings(
    admin: db_models.User = Depends(require_admin),
    runtime=Depends(get_runtime),
):
    """Current settings. API keys are never returned, only whether they are set."""
    return await _config_response(runtime)


@router.put("", response_model=AdminConfigResponse)
async def update_admin_settings(
    body: AdminConfigUpdate,
    admin: db_models.User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    runtime=Depends(get_runtime),
):
    """Update settings and drop the cached snapshot."""
    changes = body.model_dump(exclude_none=True)
    if "default_ai_provider" in changes:
        provider = normalize_provider(changes["default_ai_provider"])
        if provider is None:
            raise HTTPException(status_code=400, detail="Unsupported AI provider")
        changes["default_ai_provider"] = provider.value

    await AdminSettingsRepository(db).update(**changes)
    await db.commit()
    runtime.config_cache.invalidate()
    logger.info(f"Admin settings updated by {admin.id}: {sorted(changes)}")
    return await _config_response(runtime)
