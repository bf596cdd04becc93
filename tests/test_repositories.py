# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Tests for the atomic repository operations."""
from uuid import uuid4

import pytest

from copilot_hub.models import database as db_models
from copilot_hub.models.database import ACTIVE_STATUSES, CreditPool, SessionStatus
from copilot_hub.repositories import (
    CopilotSessionRepository,
    InterviewRepository,
    MeetingRepository,
    UserRepository,
)
from tests.conftest import T0, minutes, reload


class TestWallet:
    async def test_conditional_decrement_takes_credits(self, make_user, session_factory):
        user = await make_user(ai_credits=5)
        async with session_factory() as db:
            balance = await UserRepository(db).conditional_decrement(user.id, CreditPool.AI_MINUTES, 3)
            await db.commit()
        assert balance == 2

    async def test_conditional_decrement_refuses_overdraft(self, make_user, session_factory):
        user = await make_user(ai_credits=1)
        async with session_factory() as db:
            balance = await UserRepository(db).conditional_decrement(user.id, CreditPool.AI_MINUTES, 2)
            await db.commit()
        assert balance is None
        stored = await reload(session_factory, db_models.User, user.id)
        assert stored.ai_interview_credits == 1

    async def test_pools_are_independent(self, make_user, session_factory):
        user = await make_user(ai_credits=0, mentor_credits=4)
        async with session_factory() as db:
            repo = UserRepository(db)
            assert await repo.conditional_decrement(user.id, CreditPool.AI_MINUTES, 1) is None
            assert await repo.conditional_decrement(user.id, CreditPool.MENTOR_MINUTES, 1) == 3
            assert await repo.increment(user.id, CreditPool.AI_MINUTES, 7) == 7
            await db.commit()

    async def test_amount_must_be_positive(self, make_user, session_factory):
        user = await make_user(ai_credits=5)
        async with session_factory() as db:
            with pytest.raises(ValueError):
                await UserRepository(db).conditional_decrement(user.id, CreditPool.AI_MINUTES, 0)

    async def test_unknown_user(self, session_factory):
        async with session_factory() as db:
            assert await UserRepository(db).increment(uuid4(), CreditPool.AI_MINUTES, 1) is None


class TestBillableSessionRepository:
    async def test_claim_billed_seconds_is_compare_and_set(self, make_user, make_copilot_session, session_factory):
        owner = await make_user()
        session = await make_copilot_session(owner)
        async with session_factory() as db:
            repo = CopilotSessionRepository(db)
            assert await repo.claim_billed_seconds(session.id, 0, 120) is True
            assert await repo.claim_billed_seconds(session.id, 0, 240) is False
            await db.commit()
        stored = await reload(session_factory, db_models.CopilotSession, session.id)
        assert stored.billed_seconds == 120

    async def test_raise_total_seconds_never_lowers(self, make_user, make_interview, session_factory):
        owner = await make_user()
        interview = await make_interview(owner, total_session_seconds=300)
        async with session_factory() as db:
            repo = InterviewRepository(db)
            await repo.raise_total_seconds(interview.id, 100)
            await repo.raise_total_seconds(interview.id, 400)
            await db.commit()
        stored = await reload(session_factory, db_models.Interview, interview.id)
        assert stored.total_session_seconds == 400

    async def test_add_usage_seconds_respects_cap(self, make_user, make_interview, session_factory):
        owner = await make_user()
        interview = await make_interview(owner, duration_minutes=1, total_session_seconds=50)
        async with session_factory() as db:
            repo = InterviewRepository(db)
            assert await repo.add_usage_seconds(interview.id, 30, cap=60) == 60
            assert await repo.add_usage_seconds(interview.id, 30, cap=60) is None
            await db.commit()

    async def test_transition_status_is_conditional(self, make_user, make_meeting, session_factory):
        host = await make_user()
        meeting = await make_meeting(host, status=SessionStatus.COMPLETED.value)
        async with session_factory() as db:
            changed = await MeetingRepository(db).transition_status(
                meeting.id, SessionStatus.EXPIRED.value, ACTIVE_STATUSES
            )
            await db.commit()
        assert changed is False
        stored = await reload(session_factory, db_models.Meeting, meeting.id)
        assert stored.status == SessionStatus.COMPLETED.value

    async def test_list_expired_skips_open_and_terminal_sessions(self, make_user, make_meeting, session_factory):
        host = await make_user()
        overdue = await make_meeting(host, scheduled_at=T0)
        await make_meeting(host, scheduled_at=T0 + minutes(120))
        await make_meeting(host, scheduled_at=T0, status=SessionStatus.COMPLETED.value)

        async with session_factory() as db:
            expired = await MeetingRepository(db).list_expired(T0 + minutes(45))
        assert [m.id for m in expired] == [overdue.id]


class TestMeetingRepository:
    async def test_meeting_key_is_uppercased(self, make_user, make_meeting):
        host = await make_user()
        meeting = await make_meeting(host, meeting_key="ab12cd34")
        assert meeting.meeting_key == "AB12CD34"

    async def test_expires_at_fixed_at_creation(self, make_user, make_meeting):
        host = await make_user()
        meeting = await make_meeting(host, scheduled_at=T0, duration_minutes=30)
        assert meeting.expires_at == T0 + minutes(40)

    async def test_append_transcript_concatenates_in_sql(self, make_user, make_meeting, session_factory):
        host = await make_user()
        meeting = await make_meeting(host)
        async with session_factory() as db:
            repo = MeetingRepository(db)
            await repo.append_transcript(meeting.id, "first")
            await repo.append_transcript(meeting.id, "second\nthird")
            await db.commit()
        stored = await reload(session_factory, db_models.Meeting, meeting.id)
        assert stored.transcript == "first\nsecond\nthird"
        assert stored.status == SessionStatus.IN_PROGRESS.value

    async def test_single_attendee_slot(self, make_user, make_meeting, session_factory):
        host, first, second = await make_user(), await make_user(), await make_user()
        meeting = await make_meeting(host)
        async with session_factory() as db:
            repo = MeetingRepository(db)
            assert await repo.bind_attendee(meeting.id, first.id, T0) is True
            assert await repo.bind_attendee(meeting.id, first.id, T0 + minutes(1)) is True
            assert await repo.bind_attendee(meeting.id, second.id, T0) is False
            await db.commit()
        stored = await reload(session_factory, db_models.Meeting, meeting.id)
        assert stored.attendee_id == first.id
        assert stored.attendee_joined_at.replace(tzinfo=None) == T0.replace(tzinfo=None)


class TestDevices:
    async def test_device_list_is_capped(self, make_user, make_copilot_session, session_factory):
        owner = await make_user()
        session = await make_copilot_session(owner)
        async with session_factory() as db:
            repo = CopilotSessionRepository(db)
            for i in range(25):
                count = await repo.replace_device(session.id, f"sid-{i}", "console", cap=20)
            await db.commit()
            devices = await repo.list_devices(session.id)
        assert count == 20
        assert "sid-24" in {d.connection_id for d in devices}
        assert "sid-0" not in {d.connection_id for d in devices}

    async def test_reconnect_replaces_entry(self, make_user, make_copilot_session, session_factory):
        owner = await make_user()
        session = await make_copilot_session(owner)
        async with session_factory() as db:
            repo = CopilotSessionRepository(db)
            await repo.replace_device(session.id, "sid-1", "console")
            assert await repo.replace_device(session.id, "sid-1", "overlay") == 1
            assert await repo.remove_device(session.id, "sid-1") == 0
            await db.commit()
