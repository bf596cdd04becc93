# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Scheduled AI interviews router."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from copilot_hub.database import get_db
from copilot_hub.deps import Settings, get_runtime, get_settings
from copilot_hub.middleware.auth import get_current_active_user
from copilot_hub.models import database as db_models
from copilot_hub.models.api.sessions_schema import (
    InterviewCreate,
    ScheduledSessionResponse,
    SessionUsageRequest,
    SessionUsageResponse,
)
from copilot_hub.models.database import SessionKind
from copilot_hub.repositories import InterviewRepository
from copilot_hub.routers.meetings import apply_session_usage, to_scheduled_response

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/interviews", tags=["interviews"])


@router.post("", response_model=ScheduledSessionResponse, status_code=status.HTTP_201_CREATED)
async def create_interview(
    body: InterviewCreate,
    current_user: db_models.User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    interview = await InterviewRepository(db).create(
        owner_id=current_user.id,
        scheduled_at=body.scheduled_at,
        duration_minutes=body.duration_minutes,
        title=body.title or "Interview",
        job_description=body.job_description,
        resume_text=body.resume_text,
        keywords=[str(k) for k in body.keywords if k],
        additional_info=body.additional_info,
        expiry_grace_minutes=settings.session_expiry_grace_minutes,
    )
    await db.commit()
    await db.refresh(interview)
    return to_scheduled_response(interview)


@router.post("/{interview_id}/start", response_model=ScheduledSessionResponse)
async def start_interview(
    interview_id: UUID,
    current_user: db_models.User = Depends(get_current_active_user),
    runtime=Depends(get_runtime),
):
    """
    Start a scheduled interview.

    Allowed from 10 minutes before the scheduled time until the session expires. An overdue
    interview is closed as COMPLETED or EXPIRED and the request is rejected with 409.
    """
    interview = await runtime.lifecycle.start_interview(interview_id, current_user)
    logger.info(f"Interview {interview_id} started by {current_user.id}")
    return to_scheduled_response(interview)


@router.post("/{interview_id}/session", response_model=SessionUsageResponse)
async def interview_session_usage(
    interview_id: UUID,
    body: SessionUsageRequest,
    current_user: db_models.User = Depends(get_current_active_user),
    runtime=Depends(get_runtime),
):
    """Usage heartbeat or finalize; responds 402 when AI minutes cannot cover the charge."""
    return await apply_session_usage(runtime, SessionKind.INTERVIEW, interview_id, body, current_user)
