# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Socket handlers for mentor meeting rooms."""
import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from copilot_hub.errors import ForbiddenError, SessionNotFoundError, SessionStateError, SessionValidationError
from copilot_hub.models import database as db_models
from copilot_hub.models.api.socket_schema import (
    MeetingJoinPayload,
    MeetingScopedPayload,
    MeetingStatusPayload,
    MeetingTranscriptPayload,
)
from copilot_hub.models.database import ACTIVE_STATUSES, SessionKind, SessionStatus
from copilot_hub.models.database.sessions_model import can_transition
from copilot_hub.realtime.events import MeetingEvent
from copilot_hub.realtime.presence import PresenceRouter
from copilot_hub.repositories import MeetingRepository
from copilot_hub.services.finalizer import SHORTFALL_MESSAGES, SessionFinalizer
from copilot_hub.services.transcript_buffer import TranscriptBuffer
from copilot_hub.utils.timeutils import as_utc, isoformat, utcnow

logger = logging.getLogger(__name__)

MEETING_STATUSES = frozenset(
    {
        SessionStatus.SCHEDULED.value,
        SessionStatus.IN_PROGRESS.value,
        SessionStatus.COMPLETED.value,
        SessionStatus.EXPIRED.value,
        SessionStatus.PENDING.value,
        SessionStatus.APPROVED.value,
        SessionStatus.REJECTED.value,
    }
)
_PRE_START = (SessionStatus.SCHEDULED.value, SessionStatus.PENDING.value, SessionStatus.APPROVED.value)
HOST_SPEAKER = "host"


class MeetingHandlers:
    """Handlers for the meeting event family. Only the host may write to a meeting."""

    def __init__(
        self,
        router: PresenceRouter,
        session_factory: async_sessionmaker[AsyncSession],
        transcript_buffer: TranscriptBuffer,
        finalizer: SessionFinalizer,
    ):
        self.router = router
        self.session_factory = session_factory
        self.transcript_buffer = transcript_buffer
        self.finalizer = finalizer

    async def on_join(self, sid: str, payload: MeetingJoinPayload) -> None:
        context = self.router.require_context(sid)
        now = utcnow()
        async with self.session_factory() as db:
            repo = MeetingRepository(db)
            meeting = await repo.get_by_id(payload.meeting_id)
            if meeting is None:
                raise SessionNotFoundError("Meeting not found")
            if (meeting.meeting_key or "").upper() != payload.meeting_key:
                logger.info(f"Join of meeting {meeting.id} by {context.user_id} refused: bad key")
                raise ForbiddenError()
            if meeting.status == SessionStatus.COMPLETED.value:
                raise SessionStateError("Meeting already completed")
            if meeting.status == SessionStatus.EXPIRED.value:
                raise SessionStateError("Meeting expired")

            expires_at = as_utc(meeting.expires_at)
            overdue = expires_at is not None and now > expires_at
            if overdue and not meeting.has_usage_evidence():
                await repo.transition_status(meeting.id, SessionStatus.EXPIRED.value, ACTIVE_STATUSES)
                await db.commit()
                raise SessionStateError("Meeting expired")

            is_host = meeting.host_id == context.user_id
            if not overdue:
                if is_host:
                    if meeting.host_joined_at is None:
                        meeting.host_joined_at = now
                    if meeting.session_started_at is None:
                        meeting.session_started_at = now
                    if meeting.status in _PRE_START:
                        meeting.status = SessionStatus.IN_PROGRESS.value
                elif not await repo.bind_attendee(meeting.id, context.user_id, now):
                    logger.info(f"Join of meeting {meeting.id} by {context.user_id} refused: attendee slot taken")
                    raise ForbiddenError()
                await db.commit()

        if overdue:
            # Used but never closed: settle it the way the expiry sweep would
            await self.finalizer.finalize(
                SessionKind.MEETING,
                meeting.id,
                ended_at=expires_at,
                started_at=meeting.host_joined_at,
                raise_on_shortfall=False,
                summarize=False,
            )
            raise SessionStateError("Meeting already completed")

        await self.router.join_meeting(sid, meeting.id, is_host)
        logger.info(f"Connection {sid} joined meeting {meeting.id} ({'host' if is_host else 'attendee'})")
        await self.router.emit_to(
            sid,
            MeetingEvent.JOINED,
            {
                "meetingId": str(meeting.id),
                "meetingKey": meeting.meeting_key,
                "status": meeting.status,
                "isHost": is_host,
            },
        )
        await self.router.emit_to(sid, MeetingEvent.STATUS, {"status": meeting.status})

    def _require_host(self, sid: str, meeting_id) -> UUID:
        membership = self.router.require_meeting(sid, meeting_id)
        if not membership.is_host:
            raise ForbiddenError()
        return membership.meeting_id

    async def on_transcript_chunk(self, sid: str, payload: MeetingTranscriptPayload) -> None:
        meeting_id = self._require_host(sid, payload.meeting_id)
        if not payload.text:
            return
        self.transcript_buffer.append(meeting_id, payload.text)
        await self.router.broadcast_meeting(
            meeting_id,
            MeetingEvent.TRANSCRIPT_CHUNK,
            {"text": payload.text, "timestamp": isoformat(utcnow()), "from": HOST_SPEAKER},
            skip_sid=sid,
        )

    async def on_transcript_interim(self, sid: str, payload: MeetingTranscriptPayload) -> None:
        """Relay live interim text to the other participants; nothing is stored."""
        meeting_id = self._require_host(sid, payload.meeting_id)
        if not payload.text:
            return
        await self.router.broadcast_meeting(
            meeting_id,
            MeetingEvent.TRANSCRIPT_INTERIM,
            {
                "text": payload.text,
                "timestamp": payload.timestamp or isoformat(utcnow()),
                "from": payload.speaker or HOST_SPEAKER,
            },
            skip_sid=sid,
        )

    async def on_status_update(self, sid: str, payload: MeetingStatusPayload) -> None:
        meeting_id = self._require_host(sid, payload.meeting_id)
        status = payload.status.strip().upper()
        if status not in MEETING_STATUSES:
            raise SessionValidationError("Invalid status")
        if status == SessionStatus.COMPLETED.value:
            await self._end(sid, meeting_id)
            return

        async with self.session_factory() as db:
            meeting = await MeetingRepository(db).get_by_id(meeting_id)
            if meeting is None:
                raise SessionNotFoundError("Meeting not found")
            if not can_transition(meeting.status, status):
                raise SessionStateError("Invalid status")
            if status == SessionStatus.EXPIRED.value and meeting.has_usage_evidence():
                raise SessionStateError("Meeting was used; end it instead of expiring it")
            meeting.status = status
            await db.commit()
        await self.router.broadcast_meeting(meeting_id, MeetingEvent.STATUS, {"status": status})

    async def on_end(self, sid: str, payload: MeetingScopedPayload) -> None:
        meeting_id = self._require_host(sid, payload.meeting_id)
        await self._end(sid, meeting_id)

    async def _end(self, sid: str, meeting_id: UUID) -> None:
        """Flush buffered transcript, finalize billing, then announce the end."""
        await self.transcript_buffer.flush(meeting_id)
        result = await self.finalizer.finalize(
            SessionKind.MEETING, meeting_id, raise_on_shortfall=False
        )
        await self.router.broadcast_meeting(meeting_id, MeetingEvent.STATUS, {"status": result.status})
        await self.router.broadcast_meeting(meeting_id, MeetingEvent.END, {"meetingId": str(meeting_id)})
        if result.insufficient_credits:
            await self.router.emit_to(
                sid,
                MeetingEvent.ERROR,
                {"message": SHORTFALL_MESSAGES[db_models.Meeting.credit_pool]},
            )
