# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""REST schemas for session lifecycle endpoints."""
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CopilotSessionCreate(BaseModel):
    """Copilot session creation request."""

    title: Optional[str] = Field(None, max_length=255)
    scenario_type: Optional[str] = Field(None, description="JOB_INTERVIEW, TEAM_MEETING, ...")
    target_url: Optional[str] = Field(None, max_length=2048)
    interview_id: Optional[UUID] = Field(None, description="Scheduled interview this session serves")
    job_description: Optional[str] = None
    resume_text: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    additional_info: Optional[str] = None


class CopilotSessionResponse(BaseModel):
    id: str
    owner_id: str
    title: str
    scenario_type: str
    target_url: Optional[str]
    status: str
    join_code: Optional[str] = Field(None, description="Only returned to the owner")
    interview_id: Optional[str]
    duration_minutes: int
    session_started_at: Optional[datetime]
    session_ended_at: Optional[datetime]
    total_session_seconds: int
    billed_seconds: int
    credit_charged: bool
    summary_text: Optional[str]
    summary_data: Optional[Dict[str, Any]]
    created_at: Optional[datetime]


class SessionUsageRequest(BaseModel):
    """Usage heartbeat or finalize request for scheduled sessions."""

    seconds: Optional[float] = Field(None, description="Seconds of usage since the last heartbeat")
    finalize: bool = Field(False, description="Close the session and charge the wallet")
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


class SessionUsageResponse(BaseModel):
    total_session_seconds: int
    status: str
    billed_minutes: Optional[int] = None
    charged_minutes: Optional[int] = None


class FinalizeResponse(BaseModel):
    """Outcome of closing a session."""

    session_id: str
    status: str
    elapsed_seconds: int
    billable_seconds: int
    billable_minutes: int
    charged_minutes: int
    credit_charged: bool
    insufficient_credits: bool


class StatusUpdateRequest(BaseModel):
    status: str


class AdminConfigUpdate(BaseModel):
    """Partial update of provider and billing settings."""

    default_ai_provider: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: Optional[str] = None
    deepseek_api_key: Optional[str] = None
    deepseek_model: Optional[str] = None
    gemini_api_key: Optional[str] = None
    gemini_model: Optional[str] = None
    session_grace_minutes: Optional[int] = Field(None, ge=0, le=60)
    session_hard_stop_enabled: Optional[bool] = None


class AdminConfigResponse(BaseModel):
    default_ai_provider: str
    openai_model: str
    deepseek_model: str
    gemini_model: str
    openai_configured: bool
    deepseek_configured: bool
    gemini_configured: bool
    session_grace_minutes: int
    session_hard_stop_enabled: bool


class SummaryResponse(BaseModel):
    summary_text: str
    summary_data: Dict[str, Any]
    summary_updated_at: Optional[datetime]


class MeetingCreate(BaseModel):
    """Mentor meeting booking request."""

    title: Optional[str] = Field(None, max_length=255)
    scheduled_at: datetime
    duration_minutes: int = Field(60, ge=10, le=120)


class InterviewCreate(BaseModel):
    """Scheduled AI interview request."""

    title: Optional[str] = Field(None, max_length=255)
    scheduled_at: Optional[datetime] = None
    duration_minutes: int = Field(30, ge=1, le=240)
    job_description: Optional[str] = None
    resume_text: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    additional_info: Optional[str] = None


class ScheduledSessionResponse(BaseModel):
    """Meeting or interview as seen by its owner."""

    id: str
    title: str
    status: str
    scheduled_at: Optional[datetime]
    duration_minutes: int
    expires_at: Optional[datetime]
    session_started_at: Optional[datetime]
    session_ended_at: Optional[datetime]
    total_session_seconds: int
    billed_seconds: int
    credit_charged: bool
    meeting_key: Optional[str] = None
