# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Mentor meetings router."""
import logging
from typing import Union
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from copilot_hub.database import get_db
from copilot_hub.deps import Settings, get_runtime, get_settings
from copilot_hub.errors import InsufficientCreditsError
from copilot_hub.middleware.auth import get_current_active_user
from copilot_hub.models import database as db_models
from copilot_hub.models.api.sessions_schema import (
    MeetingCreate,
    ScheduledSessionResponse,
    SessionUsageRequest,
    SessionUsageResponse,
    StatusUpdateRequest,
)
from copilot_hub.models.database import SessionKind, SessionStatus
from copilot_hub.realtime.events import MeetingEvent
from copilot_hub.repositories import MeetingRepository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/meetings", tags=["meetings"])

CLOSING_STATUSES = {SessionStatus.COMPLETED.value, SessionStatus.ENDED.value}


def to_scheduled_response(
    session: Union[db_models.Meeting, db_models.Interview],
) -> ScheduledSessionResponse:
    return ScheduledSessionResponse(
        id=str(session.id),
        title=session.title,
        status=session.status,
        scheduled_at=session.scheduled_at,
        duration_minutes=session.duration_minutes,
        expires_at=session.expires_at,
        session_started_at=session.session_started_at,
        session_ended_at=session.session_ended_at,
        total_session_seconds=session.total_session_seconds,
        billed_seconds=session.billed_seconds,
        credit_charged=session.credit_charged,
        meeting_key=getattr(session, "meeting_key", None),
    )


async def apply_session_usage(
    runtime,
    kind: SessionKind,
    session_id: UUID,
    body: SessionUsageRequest,
    current_user: db_models.User,
) -> SessionUsageResponse:
    """Record a usage heartbeat, or finalize when the client asks to close the session."""
    if body.finalize:
        result = await runtime.lifecycle.finalize(
            kind, session_id, current_user, started_at=body.started_at, ended_at=body.ended_at
        )
        return SessionUsageResponse(
            total_session_seconds=result.elapsed_seconds,
            status=result.status,
            billed_minutes=result.billable_minutes,
            charged_minutes=result.charged_minutes,
        )

    usage = await runtime.lifecycle.record_usage(
        kind, session_id, current_user, body.seconds, started_at=body.started_at
    )
    return SessionUsageResponse(total_session_seconds=usage.total_session_seconds, status=usage.status)


@router.post("", response_model=ScheduledSessionResponse, status_code=status.HTTP_201_CREATED)
async def create_meeting(
    body: MeetingCreate,
    current_user: db_models.User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Book a meeting hosted by the caller."""
    meeting = await MeetingRepository(db).create(
        host_id=current_user.id,
        scheduled_at=body.scheduled_at,
        duration_minutes=body.duration_minutes,
        title=body.title or "Mentor session",
        expiry_grace_minutes=settings.session_expiry_grace_minutes,
    )
    await db.commit()
    await db.refresh(meeting)
    logger.info(f"Meeting {meeting.id} booked by {current_user.id}")
    return to_scheduled_response(meeting)


@router.post("/{meeting_id}/session", response_model=SessionUsageResponse)
async def meeting_session_usage(
    meeting_id: UUID,
    body: SessionUsageRequest,
    current_user: db_models.User = Depends(get_current_active_user),
    runtime=Depends(get_runtime),
):
    """
    Usage heartbeat or finalize for a meeting.

    Buffered transcript lines are written before the meeting is closed. Responds 402 when the
    host's mentor minutes cannot cover the charge.
    """
    if body.finalize:
        await runtime.transcript_buffer.flush(meeting_id)
    response = await apply_session_usage(runtime, SessionKind.MEETING, meeting_id, body, current_user)
    if body.finalize:
        await runtime.router.broadcast_meeting(meeting_id, MeetingEvent.STATUS, {"status": response.status})
        await runtime.router.broadcast_meeting(meeting_id, MeetingEvent.END, {"meetingId": str(meeting_id)})
    return response


@router.post("/{meeting_id}/status")
async def update_meeting_status(
    meeting_id: UUID,
    body: StatusUpdateRequest,
    current_user: db_models.User = Depends(get_current_active_user),
    runtime=Depends(get_runtime),
):
    """Owner status change. Closing the meeting this way bills it and may respond 402."""
    if body.status.strip().upper() in CLOSING_STATUSES:
        await runtime.transcript_buffer.flush(meeting_id)
    try:
        new_status = await runtime.lifecycle.update_status(
            SessionKind.MEETING, meeting_id, current_user, body.status
        )
    except InsufficientCreditsError as e:
        await runtime.router.broadcast_meeting(meeting_id, MeetingEvent.STATUS, {"status": e.result.status})
        raise
    await runtime.router.broadcast_meeting(meeting_id, MeetingEvent.STATUS, {"status": new_status})
    return {"meetingId": str(meeting_id), "status": new_status}
