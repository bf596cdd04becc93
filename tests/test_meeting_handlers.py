# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Tests for meeting room handlers."""
from types import SimpleNamespace
from uuid import uuid4

import pytest

from copilot_hub.errors import (
    ForbiddenError,
    NotJoinedError,
    SessionNotFoundError,
    SessionStateError,
    SessionValidationError,
)
from copilot_hub.models import database as db_models
from copilot_hub.models.api.socket_schema import (
    MeetingJoinPayload,
    MeetingScopedPayload,
    MeetingStatusPayload,
    MeetingTranscriptPayload,
)
from copilot_hub.models.database import SessionStatus
from copilot_hub.realtime.meeting_handlers import MeetingHandlers
from copilot_hub.realtime.presence import LiveSessionStore, PresenceRouter
from copilot_hub.services.transcript_buffer import TranscriptBuffer
from copilot_hub.utils.timeutils import utcnow
from tests.conftest import T0, minutes, reload

MEETING_KEY = "A1B2C3D4"


@pytest.fixture
def router(sio):
    return PresenceRouter(sio, LiveSessionStore())


@pytest.fixture
def transcript_buffer(session_factory):
    return TranscriptBuffer(session_factory, flush_delay=10)


@pytest.fixture
def handlers(router, session_factory, transcript_buffer, finalizer):
    return MeetingHandlers(router, session_factory, transcript_buffer, finalizer)


@pytest.fixture
async def meeting(make_user, make_meeting):
    host = await make_user(mentor_credits=60)
    meeting = await make_meeting(host, scheduled_at=utcnow(), meeting_key=MEETING_KEY)
    return host, meeting


async def join(handlers, router, sid, user, meeting, key=MEETING_KEY):
    router.register(sid, user.id)
    await handlers.on_join(sid, MeetingJoinPayload(meetingId=str(meeting.id), meetingKey=key))


class TestMeetingJoin:
    async def test_host_join_starts_the_meeting(self, handlers, router, sio, meeting, session_factory):
        host, m = meeting

        await join(handlers, router, "host-1", host, m, key=MEETING_KEY.lower())

        sent = dict(sio.sent_to("host-1"))
        assert sent["meeting_joined"]["isHost"] is True
        assert sent["meeting_status"] == {"status": SessionStatus.IN_PROGRESS.value}
        stored = await reload(session_factory, db_models.Meeting, m.id)
        assert stored.status == SessionStatus.IN_PROGRESS.value
        assert stored.host_joined_at is not None

    async def test_wrong_key(self, handlers, router, meeting):
        host, m = meeting
        with pytest.raises(ForbiddenError) as excinfo:
            await join(handlers, router, "host-1", host, m, key="NOPE")
        assert excinfo.value.message == "Forbidden"

    async def test_unknown_meeting(self, handlers, router, meeting):
        host, _ = meeting
        with pytest.raises(SessionNotFoundError):
            await join(handlers, router, "host-1", host, SimpleNamespace(id=uuid4()))

    async def test_single_attendee(self, handlers, router, sio, make_user, meeting, session_factory):
        _, m = meeting
        first, second = await make_user(), await make_user()

        await join(handlers, router, "a-1", first, m)
        assert dict(sio.sent_to("a-1"))["meeting_joined"]["isHost"] is False
        with pytest.raises(ForbiddenError) as excinfo:
            await join(handlers, router, "b-1", second, m)
        assert excinfo.value.message == "Forbidden"

        stored = await reload(session_factory, db_models.Meeting, m.id)
        assert stored.attendee_id == first.id
        assert stored.attendee_joined_at is not None

    async def test_overdue_unused_meeting_expires(self, handlers, router, make_user, make_meeting, session_factory):
        host = await make_user()
        m = await make_meeting(host, scheduled_at=T0, meeting_key=MEETING_KEY)

        with pytest.raises(SessionStateError, match="Meeting expired"):
            await join(handlers, router, "host-1", host, m)

        stored = await reload(session_factory, db_models.Meeting, m.id)
        assert stored.status == SessionStatus.EXPIRED.value

    async def test_overdue_used_meeting_is_settled(self, handlers, router, make_user, make_meeting, session_factory):
        host = await make_user(mentor_credits=60)
        m = await make_meeting(
            host,
            scheduled_at=T0,
            meeting_key=MEETING_KEY,
            status=SessionStatus.IN_PROGRESS.value,
            host_joined_at=T0,
            session_started_at=T0,
        )

        with pytest.raises(SessionStateError, match="already completed"):
            await join(handlers, router, "host-1", host, m)

        stored = await reload(session_factory, db_models.Meeting, m.id)
        assert stored.status == SessionStatus.COMPLETED.value
        assert stored.credit_charged is True

    async def test_completed_meeting_rejects_join(self, handlers, router, make_user, make_meeting):
        host = await make_user()
        m = await make_meeting(
            host, scheduled_at=utcnow(), meeting_key=MEETING_KEY, status=SessionStatus.COMPLETED.value
        )
        with pytest.raises(SessionStateError, match="already completed"):
            await join(handlers, router, "host-1", host, m)


class TestMeetingTranscript:
    async def test_host_chunk_is_buffered_and_relayed(self, handlers, router, sio, make_user, meeting, transcript_buffer):
        host, m = meeting
        attendee = await make_user()
        await join(handlers, router, "host-1", host, m)
        await join(handlers, router, "att-1", attendee, m)

        await handlers.on_transcript_chunk("host-1", MeetingTranscriptPayload(text=" Welcome "))

        assert transcript_buffer.pending(m.id) == ["Welcome"]
        chunk = sio.events("meeting_transcript_chunk")[-1]
        assert chunk["skip_sid"] == "host-1"
        assert chunk["data"]["from"] == "host"
        assert chunk["data"]["text"] == "Welcome"

    async def test_interim_is_relayed_but_not_stored(self, handlers, router, sio, meeting, transcript_buffer):
        host, m = meeting
        await join(handlers, router, "host-1", host, m)

        await handlers.on_transcript_interim("host-1", MeetingTranscriptPayload(text="Welc", **{"from": "mentor"}))

        assert transcript_buffer.pending(m.id) == []
        assert sio.events("meeting_transcript_interim")[-1]["data"]["from"] == "mentor"

    async def test_attendee_cannot_write(self, handlers, router, make_user, meeting):
        _, m = meeting
        attendee = await make_user()
        await join(handlers, router, "att-1", attendee, m)
        with pytest.raises(ForbiddenError):
            await handlers.on_transcript_chunk("att-1", MeetingTranscriptPayload(text="hi"))

    async def test_join_first(self, handlers, router, make_user):
        user = await make_user()
        router.register("sid-1", user.id)
        with pytest.raises(NotJoinedError):
            await handlers.on_transcript_chunk("sid-1", MeetingTranscriptPayload(text="hi"))


class TestMeetingStatusAndEnd:
    async def test_invalid_status(self, handlers, router, meeting):
        host, m = meeting
        await join(handlers, router, "host-1", host, m)
        with pytest.raises(SessionValidationError):
            await handlers.on_status_update("host-1", MeetingStatusPayload(status="PAUSED"))

    async def test_end_flushes_transcript_and_completes(self, handlers, router, sio, meeting, transcript_buffer, session_factory):
        host, m = meeting
        await join(handlers, router, "host-1", host, m)
        await handlers.on_transcript_chunk("host-1", MeetingTranscriptPayload(text="Last words"))

        await handlers.on_end("host-1", MeetingScopedPayload())

        stored = await reload(session_factory, db_models.Meeting, m.id)
        assert stored.transcript == "Last words"
        assert stored.status == SessionStatus.COMPLETED.value
        assert transcript_buffer.pending(m.id) == []
        assert sio.events("meeting_status")[-1]["data"] == {"status": SessionStatus.COMPLETED.value}
        assert sio.events("meeting_end")[-1]["data"] == {"meetingId": str(m.id)}

    async def test_completed_status_update_goes_through_finalize(self, handlers, router, sio, meeting, session_factory):
        host, m = meeting
        await join(handlers, router, "host-1", host, m)

        await handlers.on_status_update("host-1", MeetingStatusPayload(status="completed"))

        stored = await reload(session_factory, db_models.Meeting, m.id)
        assert stored.status == SessionStatus.COMPLETED.value
        assert sio.events("meeting_end")

    async def test_used_meeting_cannot_be_expired(self, handlers, router, meeting, session_factory):
        host, m = meeting
        await join(handlers, router, "host-1", host, m)

        with pytest.raises(SessionStateError, match="end it instead"):
            await handlers.on_status_update("host-1", MeetingStatusPayload(status="EXPIRED"))

        stored = await reload(session_factory, db_models.Meeting, m.id)
        assert stored.status == SessionStatus.IN_PROGRESS.value
