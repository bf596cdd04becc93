# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Repository pattern implementations for database access."""
from sqlalchemy.ext.asyncio import AsyncSession

from copilot_hub.models.database.sessions_model import SessionKind
from copilot_hub.repositories.admin_settings_repository import AdminSettingsRepository
from copilot_hub.repositories.copilot_session_repository import CopilotSessionRepository
from copilot_hub.repositories.interview_repository import InterviewRepository
from copilot_hub.repositories.meeting_repository import MeetingRepository
from copilot_hub.repositories.session_repository import BillableSessionRepository
from copilot_hub.repositories.user_repository import UserRepository

__all__ = [
    "AdminSettingsRepository",
    "BillableSessionRepository",
    "CopilotSessionRepository",
    "InterviewRepository",
    "MeetingRepository",
    "UserRepository",
    "repository_for",
]

_REPOSITORIES = {
    SessionKind.MEETING: MeetingRepository,
    SessionKind.INTERVIEW: InterviewRepository,
    SessionKind.COPILOT: CopilotSessionRepository,
}


def repository_for(kind: SessionKind, db: AsyncSession) -> BillableSessionRepository:
    """Session repository for a session kind."""
    return _REPOSITORIES[SessionKind(kind)](db)
