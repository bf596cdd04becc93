# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Copilot sessions router."""
import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from copilot_hub.database import get_db
from copilot_hub.deps import get_runtime
from copilot_hub.errors import ForbiddenError, InsufficientCreditsError, SessionNotFoundError
from copilot_hub.middleware.auth import get_current_active_user
from copilot_hub.models import database as db_models
from copilot_hub.models.api.sessions_schema import (
    CopilotSessionCreate,
    CopilotSessionResponse,
    FinalizeResponse,
    SummaryResponse,
)
from copilot_hub.models.database import SessionKind
from copilot_hub.models.database.copilot_sessions_model import SCENARIO_TYPES
from copilot_hub.realtime.events import CopilotEvent
from copilot_hub.repositories import CopilotSessionRepository, InterviewRepository
from copilot_hub.utils.timeutils import utcnow

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/copilot-sessions", tags=["copilot-sessions"])
limiter = Limiter(key_func=get_remote_address)

_SCENARIO_ALIASES = {"CLIENT_MEETING": "CLIENT_CALL", "HR_INTERVIEW": "JOB_INTERVIEW"}


def normalize_scenario_type(value: Optional[str]) -> str:
    raw = str(value or "").strip().upper()
    raw = _SCENARIO_ALIASES.get(raw, raw)
    return raw if raw in SCENARIO_TYPES else "OTHER"


def to_response(session: db_models.CopilotSession, user: db_models.User) -> CopilotSessionResponse:
    is_owner = session.owner_id == user.id
    return CopilotSessionResponse(
        id=str(session.id),
        owner_id=str(session.owner_id),
        title=session.title,
        scenario_type=session.scenario_type,
        target_url=session.target_url,
        status=session.status,
        join_code=session.join_code if is_owner else None,
        interview_id=str(session.interview_id) if session.interview_id else None,
        duration_minutes=session.duration_minutes,
        session_started_at=session.session_started_at,
        session_ended_at=session.session_ended_at,
        total_session_seconds=session.total_session_seconds,
        billed_seconds=session.billed_seconds,
        credit_charged=session.credit_charged,
        summary_text=session.summary_text,
        summary_data=session.summary_data,
        created_at=session.created_at,
    )


async def verify_session_access(
    session_id: UUID,
    current_user: db_models.User,
    db: AsyncSession,
) -> db_models.CopilotSession:
    """Verify user owns the session (admins may read any)."""
    session = await CopilotSessionRepository(db).get_by_id(session_id)
    if not session or (session.owner_id != current_user.id and not current_user.is_admin):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session


@router.post("", response_model=CopilotSessionResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def create_session(
    request: Request,
    body: CopilotSessionCreate,
    current_user: db_models.User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Create a copilot session.

    When linked to a scheduled interview, the interview's duration bounds the session and its job
    description, resume and keywords become the default assistant context.
    """
    metadata = {
        "keywords": [str(k) for k in body.keywords if k][:100],
        "job_description": body.job_description,
        "resume_text": body.resume_text,
        "additional_info": body.additional_info,
    }
    duration_minutes = 0
    title = body.title

    if body.interview_id is not None:
        interview = await InterviewRepository(db).get_by_id(body.interview_id)
        if interview is None or interview.owner_id != current_user.id:
            raise SessionNotFoundError("Interview not found")
        duration_minutes = interview.duration_minutes
        title = title or interview.title
        metadata["keywords"] = metadata["keywords"] or list(interview.keywords or [])
        metadata["job_description"] = metadata["job_description"] or interview.job_description
        metadata["resume_text"] = metadata["resume_text"] or interview.resume_text
        metadata["additional_info"] = metadata["additional_info"] or interview.additional_info

    session = await CopilotSessionRepository(db).create(
        owner_id=current_user.id,
        title=title or "Live Copilot Session",
        scenario_type=normalize_scenario_type(body.scenario_type),
        target_url=body.target_url,
        interview_id=body.interview_id,
        duration_minutes=duration_minutes,
        session_metadata={k: v for k, v in metadata.items() if v},
    )
    await db.commit()
    await db.refresh(session)
    logger.info(f"Copilot session {session.id} created by {current_user.id}")
    return to_response(session, current_user)


@router.get("", response_model=List[CopilotSessionResponse])
async def list_sessions(
    current_user: db_models.User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    """List the caller's copilot sessions."""
    sessions = await CopilotSessionRepository(db).list_by_owner(current_user.id)
    return [to_response(s, current_user) for s in sessions]


@router.get("/{session_id}", response_model=CopilotSessionResponse)
async def get_session(
    session_id: UUID,
    current_user: db_models.User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
):
    session = await verify_session_access(session_id, current_user, db)
    return to_response(session, current_user)


@router.post("/{session_id}/start", response_model=CopilotSessionResponse)
async def start_session(
    session_id: UUID,
    current_user: db_models.User = Depends(get_current_active_user),
    runtime=Depends(get_runtime),
):
    """Issue a join code and mark the session in progress."""
    session = await runtime.lifecycle.start_copilot(session_id, current_user)
    return to_response(session, current_user)


@router.post("/{session_id}/end", response_model=FinalizeResponse)
async def end_session(
    session_id: UUID,
    current_user: db_models.User = Depends(get_current_active_user),
    runtime=Depends(get_runtime),
):
    """
    End the session and charge the unbilled minutes.

    Responds 402 when the wallet cannot cover the charge; the session is closed either way.
    """
    try:
        result = await runtime.lifecycle.finalize(
            SessionKind.COPILOT, session_id, current_user, owner_only=True
        )
    except InsufficientCreditsError as e:
        await _announce_end(runtime, session_id, e.result.status)
        raise
    await _announce_end(runtime, session_id, result.status)
    return FinalizeResponse(**result.to_dict())


async def _announce_end(runtime, session_id: UUID, status_value: str) -> None:
    runtime.store.cancel_finalize(session_id)
    runtime.store.release(session_id)
    await runtime.router.broadcast_copilot(
        session_id, CopilotEvent.END, {"sessionId": str(session_id), "status": status_value}
    )
    await runtime.router.broadcast_copilot(session_id, CopilotEvent.PRESENCE, {"count": 0})


@router.post("/{session_id}/summary", response_model=SummaryResponse)
@limiter.limit("10/minute")
async def summarize_session(
    request: Request,
    session_id: UUID,
    current_user: db_models.User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    runtime=Depends(get_runtime),
):
    """Regenerate the session recap."""
    session = await verify_session_access(session_id, current_user, db)
    summary = await runtime.summarizer.summarize_session(db, session)
    if summary is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Transcript is empty")

    session.summary_text = summary.summary_text
    session.summary_data = summary.summary_data
    session.summary_updated_at = utcnow()
    await db.commit()
    return SummaryResponse(
        summary_text=session.summary_text,
        summary_data=session.summary_data,
        summary_updated_at=session.summary_updated_at,
    )


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: UUID,
    current_user: db_models.User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    runtime=Depends(get_runtime),
):
    session = await verify_session_access(session_id, current_user, db)
    if session.owner_id != current_user.id:
        raise ForbiddenError()
    runtime.store.release(session_id)
    await CopilotSessionRepository(db).delete(session_id)
    await db.commit()
