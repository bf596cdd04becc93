# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Repository for Meeting operations."""
import secrets
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import case, literal, or_, update

from copilot_hub.models import database as db_models
from copilot_hub.models.database.sessions_model import TERMINAL_STATUSES, SessionStatus
from copilot_hub.repositories.session_repository import BillableSessionRepository
from copilot_hub.services.billing import compute_expires_at


def generate_meeting_key() -> str:
    return secrets.token_hex(4).upper()


class MeetingRepository(BillableSessionRepository[db_models.Meeting]):
    """Repository for Meeting operations."""

    model = db_models.Meeting

    async def create(
        self,
        host_id: UUID,
        scheduled_at: datetime,
        duration_minutes: int = 60,
        title: str = "",
        meeting_key: Optional[str] = None,
        status: str = SessionStatus.SCHEDULED.value,
        expiry_grace_minutes: int = 10,
    ) -> db_models.Meeting:
        """Create a new meeting; ``expires_at`` is fixed here and never recomputed."""
        meeting = db_models.Meeting(
            host_id=host_id,
            title=title,
            scheduled_at=scheduled_at,
            duration_minutes=duration_minutes,
            expires_at=compute_expires_at(scheduled_at, duration_minutes, expiry_grace_minutes),
            meeting_key=(meeting_key or generate_meeting_key()).upper(),
            status=status,
        )
        self.db.add(meeting)
        await self.db.flush()
        return meeting

    async def bind_attendee(self, meeting_id: UUID, user_id: UUID, joined_at: datetime) -> bool:
        """Claim the single attendee slot; False if another identity already holds it."""
        model = db_models.Meeting
        result = await self.db.execute(
            update(model)
            .where(
                model.id == meeting_id,
                or_(model.attendee_id.is_(None), model.attendee_id == user_id),
            )
            .values(
                attendee_id=user_id,
                attendee_joined_at=case(
                    (model.attendee_joined_at.is_(None), joined_at),
                    else_=model.attendee_joined_at,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def append_transcript(
        self, meeting_id: UUID, text: str, force_status: Optional[str] = None
    ) -> bool:
        """
        Append a block of lines to the stored transcript.

        The concatenation happens in SQL against the current row, so concurrent writers never
        overwrite each other with a stale copy.

        Args:
            meeting_id: Meeting to append to
            text: Newline-joined fragments
            force_status: Status to set in the same statement (e.g. on meeting end)

        Returns:
            False if the meeting does not exist
        """
        model = db_models.Meeting
        transcript = case(
            (or_(model.transcript.is_(None), model.transcript == ""), literal(text)),
            else_=model.transcript + "\n" + text,
        )
        if force_status:
            status = literal(force_status)
        else:
            status = case(
                (model.status.in_([s.value for s in TERMINAL_STATUSES]), model.status),
                else_=literal(SessionStatus.IN_PROGRESS.value),
            )
        result = await self.db.execute(
            update(model)
            .where(model.id == meeting_id)
            .values(transcript=transcript, status=status)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
