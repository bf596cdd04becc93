# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Shared fixtures: an in-memory database, settings and a recording Socket.IO stand-in."""
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("ENABLE_REDIS", "false")

from copilot_hub.database import Base, create_session_maker
from copilot_hub.deps import Settings
from copilot_hub.models import database as db_models
from copilot_hub.repositories import (
    CopilotSessionRepository,
    InterviewRepository,
    MeetingRepository,
    UserRepository,
)
from copilot_hub.services.config_cache import AdminConfigCache
from copilot_hub.services.finalizer import SessionFinalizer

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSocketServer:
    """Records what would have been sent over Socket.IO."""

    def __init__(self):
        self.emitted: List[Dict[str, Any]] = []
        self.rooms: Dict[str, set] = {}
        self.handlers: Dict[str, Any] = {}

    async def emit(self, event, data=None, to=None, room=None, skip_sid=None, namespace=None):
        self.emitted.append(
            {"event": event, "data": data, "to": to, "room": room, "skip_sid": skip_sid}
        )

    async def enter_room(self, sid, room, namespace=None):
        self.rooms.setdefault(room, set()).add(sid)

    async def leave_room(self, sid, room, namespace=None):
        self.rooms.get(room, set()).discard(sid)

    def on(self, event, handler=None, namespace=None):
        self.handlers[event] = handler

    def sent_to(self, sid: str) -> List[Tuple[str, Any]]:
        return [(e["event"], e["data"]) for e in self.emitted if e["to"] == sid]

    def sent_to_room(self, room: str) -> List[Tuple[str, Any]]:
        return [(e["event"], e["data"]) for e in self.emitted if e["room"] == room]

    def events(self, name: str) -> List[Dict[str, Any]]:
        return [e for e in self.emitted if e["event"] == name]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        enable_redis=False,
        jwt_secret_key="test-secret-key",
        openai_api_key="sk-test",
        deepseek_api_key="",
        gemini_api_key="",
        transcript_flush_seconds=0.05,
    )


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_maker(engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config_cache(session_factory, settings, clock) -> AdminConfigCache:
    return AdminConfigCache(session_factory, settings, ttl_seconds=5.0, clock=clock)


@pytest.fixture
def finalizer(session_factory, config_cache) -> SessionFinalizer:
    return SessionFinalizer(session_factory, config_cache)


@pytest.fixture
def sio() -> FakeSocketServer:
    return FakeSocketServer()


@pytest.fixture
def make_user(session_factory):
    counter = {"n": 0}

    async def _make(ai_credits: int = 0, mentor_credits: int = 0, role: str = "user", is_active: bool = True):
        counter["n"] += 1
        async with session_factory() as db:
            user = await UserRepository(db).create(
                email=f"user{counter['n']}@example.com",
                name=f"User {counter['n']}",
                role=role,
                ai_interview_credits=ai_credits,
                mentor_session_credits=mentor_credits,
                is_active=is_active,
            )
            await db.commit()
            return user

    return _make


@pytest.fixture
def make_copilot_session(session_factory):
    async def _make(owner: db_models.User, **fields):
        async with session_factory() as db:
            session = await CopilotSessionRepository(db).create(
                owner_id=owner.id,
                title=fields.pop("title", "Live Copilot Session"),
                interview_id=fields.pop("interview_id", None),
                duration_minutes=fields.pop("duration_minutes", 0),
                session_metadata=fields.pop("session_metadata", None),
            )
            for key, value in fields.items():
                setattr(session, key, value)
            await db.commit()
            return session

    return _make


@pytest.fixture
def make_meeting(session_factory):
    async def _make(host: db_models.User, scheduled_at: Optional[datetime] = None, duration_minutes: int = 30, **fields):
        async with session_factory() as db:
            meeting = await MeetingRepository(db).create(
                host_id=host.id,
                scheduled_at=scheduled_at or T0,
                duration_minutes=duration_minutes,
                title="Mentor session",
                meeting_key=fields.pop("meeting_key", None),
            )
            for key, value in fields.items():
                setattr(meeting, key, value)
            await db.commit()
            return meeting

    return _make


@pytest.fixture
def make_interview(session_factory):
    async def _make(owner: db_models.User, scheduled_at: Optional[datetime] = None, duration_minutes: int = 30, **fields):
        async with session_factory() as db:
            interview = await InterviewRepository(db).create(
                owner_id=owner.id,
                scheduled_at=scheduled_at or T0,
                duration_minutes=duration_minutes,
                title="Backend interview",
                job_description=fields.pop("job_description", None),
                keywords=fields.pop("keywords", None),
            )
            for key, value in fields.items():
                setattr(interview, key, value)
            await db.commit()
            return interview

    return _make


async def reload(session_factory, model, object_id):
    """Fresh copy of a row, bypassing any identity map."""
    async with session_factory() as db:
        return await db.get(model, object_id)


def minutes(n: float) -> timedelta:
    return timedelta(minutes=n)
