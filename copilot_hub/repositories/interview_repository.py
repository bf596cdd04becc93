# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Repository for Interview operations."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from copilot_hub.models import database as db_models
from copilot_hub.models.database.sessions_model import SessionStatus
from copilot_hub.repositories.session_repository import BillableSessionRepository
from copilot_hub.services.billing import compute_expires_at


class InterviewRepository(BillableSessionRepository[db_models.Interview]):
    """Repository for Interview operations."""

    model = db_models.Interview

    async def create(
        self,
        owner_id: UUID,
        scheduled_at: Optional[datetime],
        duration_minutes: int,
        title: str = "",
        job_description: Optional[str] = None,
        resume_text: Optional[str] = None,
        keywords: Optional[List[str]] = None,
        additional_info: Optional[str] = None,
        status: str = SessionStatus.SCHEDULED.value,
        expiry_grace_minutes: int = 10,
    ) -> db_models.Interview:
        """Create a new interview; ``expires_at`` is fixed here and never recomputed."""
        interview = db_models.Interview(
            owner_id=owner_id,
            title=title,
            scheduled_at=scheduled_at,
            duration_minutes=duration_minutes,
            expires_at=compute_expires_at(scheduled_at, duration_minutes, expiry_grace_minutes),
            job_description=job_description,
            resume_text=resume_text,
            keywords=keywords or [],
            additional_info=additional_info,
            status=status,
        )
        self.db.add(interview)
        await self.db.flush()
        return interview
