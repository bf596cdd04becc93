# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""REST endpoint tests against the FastAPI app with an in-memory database."""
from datetime import timedelta
from uuid import UUID

import httpx
import pytest

from copilot_hub.database import get_db
from copilot_hub.main import app
from copilot_hub.middleware.auth import get_current_active_user
from copilot_hub.models import database as db_models
from copilot_hub.models.database import SessionStatus
from copilot_hub.runtime import build_runtime
from copilot_hub.utils.timeutils import utcnow
from tests.conftest import FakeSocketServer, minutes, reload


class CurrentUser:
    user = None


@pytest.fixture
def current():
    return CurrentUser()


@pytest.fixture
def runtime(settings, session_factory):
    return build_runtime(settings, session_factory, sio=FakeSocketServer())


@pytest.fixture
async def client(runtime, session_factory, current):
    async def override_get_db():
        async with session_factory() as db:
            yield db

    async def override_current_user():
        return current.user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_active_user] = override_current_user
    app.state.runtime = runtime
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()
    await runtime.stop()


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/api/health")

        assert response.status_code == 200
        services = response.json()["services"]
        assert services["openai"] == "configured"
        assert services["gemini"] == "not_configured"
        assert services["redis"] == "disabled"


class TestCopilotSessions:
    async def test_create_normalizes_scenario(self, client, current, make_user):
        current.user = await make_user()

        response = await client.post(
            "/api/copilot-sessions",
            json={"title": "Acme call", "scenario_type": "client_meeting", "keywords": ["sales"]},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["scenario_type"] == "CLIENT_CALL"
        assert body["status"] == SessionStatus.DRAFT.value
        assert body["join_code"] is None

    async def test_create_for_someone_elses_interview(self, client, current, make_user, make_interview):
        other = await make_user()
        interview = await make_interview(other)
        current.user = await make_user()

        response = await client.post("/api/copilot-sessions", json={"interview_id": str(interview.id)})

        assert response.status_code == 404
        assert response.json() == {"error": "Interview not found", "detail": None, "code": "not_found"}

    async def test_create_from_interview_inherits_context(self, client, current, make_user, make_interview, session_factory):
        current.user = await make_user()
        interview = await make_interview(current.user, job_description="Build APIs", keywords=["python"])

        response = await client.post("/api/copilot-sessions", json={"interview_id": str(interview.id)})

        body = response.json()
        assert body["duration_minutes"] == 30
        stored = await reload(session_factory, db_models.CopilotSession, UUID(body["id"]))
        assert stored.session_metadata["job_description"] == "Build APIs"
        assert stored.session_metadata["keywords"] == ["python"]

    async def test_start_and_read(self, client, current, make_user, make_copilot_session):
        current.user = await make_user()
        session = await make_copilot_session(current.user)

        started = await client.post(f"/api/copilot-sessions/{session.id}/start")
        fetched = await client.get(f"/api/copilot-sessions/{session.id}")

        assert started.status_code == 200
        assert started.json()["status"] == SessionStatus.IN_PROGRESS.value
        assert fetched.json()["join_code"] == started.json()["join_code"]

    async def test_other_users_cannot_see_a_session(self, client, current, make_user, make_copilot_session):
        session = await make_copilot_session(await make_user())
        current.user = await make_user()

        response = await client.get(f"/api/copilot-sessions/{session.id}")

        assert response.status_code == 404

    async def test_end_charges_and_announces(self, client, current, runtime, make_user, make_copilot_session, session_factory):
        current.user = await make_user(ai_credits=10)
        session = await make_copilot_session(
            current.user,
            status=SessionStatus.IN_PROGRESS.value,
            session_started_at=utcnow() - minutes(5),
        )

        response = await client.post(f"/api/copilot-sessions/{session.id}/end")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == SessionStatus.ENDED.value
        assert body["credit_charged"] is True
        assert body["charged_minutes"] >= 2
        assert runtime.sio.events("copilot_end")[-1]["data"]["status"] == SessionStatus.ENDED.value
        user = await reload(session_factory, db_models.User, current.user.id)
        assert user.ai_interview_credits == 10 - body["charged_minutes"]

    async def test_end_without_credits_is_402(self, client, current, runtime, make_user, make_copilot_session, session_factory):
        current.user = await make_user(ai_credits=0)
        session = await make_copilot_session(
            current.user,
            status=SessionStatus.IN_PROGRESS.value,
            session_started_at=utcnow() - minutes(10),
        )

        response = await client.post(f"/api/copilot-sessions/{session.id}/end")

        assert response.status_code == 402
        body = response.json()
        assert body["code"] == "insufficient_credits"
        assert set(body) == {"error", "detail", "code"}
        stored = await reload(session_factory, db_models.CopilotSession, session.id)
        assert stored.status == SessionStatus.ENDED.value
        assert stored.credit_charged is False
        assert runtime.sio.events("copilot_end")

    async def test_only_owner_ends(self, client, current, make_user, make_copilot_session):
        attendee = await make_user()
        session = await make_copilot_session(await make_user(), attendee_id=attendee.id)
        current.user = attendee

        response = await client.post(f"/api/copilot-sessions/{session.id}/end")

        assert response.status_code == 403

    async def test_summary_needs_a_transcript(self, client, current, make_user, make_copilot_session):
        current.user = await make_user()
        session = await make_copilot_session(current.user)

        response = await client.post(f"/api/copilot-sessions/{session.id}/summary")

        assert response.status_code == 400
        assert response.json()["detail"] == "Transcript is empty"

    async def test_delete(self, client, current, make_user, make_copilot_session):
        current.user = await make_user()
        session = await make_copilot_session(current.user)

        deleted = await client.delete(f"/api/copilot-sessions/{session.id}")
        listed = await client.get("/api/copilot-sessions")

        assert deleted.status_code == 204
        assert listed.json() == []


class TestMeetingsAndInterviews:
    async def test_meeting_heartbeat_then_finalize(self, client, current, runtime, make_user, session_factory):
        current.user = await make_user(mentor_credits=30)
        created = await client.post(
            "/api/meetings", json={"scheduled_at": utcnow().isoformat(), "duration_minutes": 30}
        )
        meeting_id = created.json()["id"]
        assert created.status_code == 201
        assert len(created.json()["meeting_key"]) == 8

        heartbeat = await client.post(f"/api/meetings/{meeting_id}/session", json={"seconds": 30})
        assert heartbeat.json()["total_session_seconds"] == 30
        assert heartbeat.json()["status"] == SessionStatus.IN_PROGRESS.value

        final = await client.post(f"/api/meetings/{meeting_id}/session", json={"finalize": True})
        assert final.status_code == 200
        assert final.json()["status"] == SessionStatus.COMPLETED.value
        assert runtime.sio.events("meeting_end")[-1]["data"] == {"meetingId": meeting_id}

    async def test_meeting_status_update(self, client, current, make_user, make_meeting):
        current.user = await make_user()
        meeting = await make_meeting(current.user, scheduled_at=utcnow())

        response = await client.post(f"/api/meetings/{meeting.id}/status", json={"status": "in_progress"})

        assert response.json() == {"meetingId": str(meeting.id), "status": SessionStatus.IN_PROGRESS.value}

    async def test_meeting_closed_by_status_update_is_billed(self, client, current, runtime, make_user, make_meeting, session_factory):
        current.user = await make_user(mentor_credits=0)
        started = utcnow() - minutes(10)
        meeting = await make_meeting(
            current.user,
            scheduled_at=started,
            status=SessionStatus.IN_PROGRESS.value,
            session_started_at=started,
            host_joined_at=started,
        )

        response = await client.post(f"/api/meetings/{meeting.id}/status", json={"status": "COMPLETED"})

        assert response.status_code == 402
        assert response.json()["code"] == "insufficient_credits"
        assert runtime.sio.events("meeting_status")[-1]["data"] == {"status": SessionStatus.COMPLETED.value}
        stored = await reload(session_factory, db_models.Meeting, meeting.id)
        assert stored.status == SessionStatus.COMPLETED.value
        assert stored.session_ended_at is not None

    async def test_meeting_duration_bounds(self, client, current, make_user):
        current.user = await make_user()
        response = await client.post(
            "/api/meetings", json={"scheduled_at": utcnow().isoformat(), "duration_minutes": 5}
        )
        assert response.status_code == 422

    async def test_interview_create_and_start(self, client, current, make_user):
        current.user = await make_user()
        created = await client.post(
            "/api/interviews",
            json={"title": "Mock", "scheduled_at": (utcnow() + timedelta(minutes=5)).isoformat()},
        )
        interview_id = created.json()["id"]

        started = await client.post(f"/api/interviews/{interview_id}/start")

        assert started.status_code == 200
        assert started.json()["status"] == SessionStatus.IN_PROGRESS.value

    async def test_interview_heartbeat_rejects_zero(self, client, current, make_user, make_interview):
        current.user = await make_user()
        interview = await make_interview(current.user, scheduled_at=utcnow())

        response = await client.post(f"/api/interviews/{interview.id}/session", json={"seconds": 0})

        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"


class TestAdminSettings:
    async def test_requires_admin(self, client, current, make_user):
        current.user = await make_user()
        assert (await client.get("/api/admin/settings")).status_code == 403

    async def test_update_invalidates_cache(self, client, current, make_user):
        current.user = await make_user(role="admin")
        before = await client.get("/api/admin/settings")
        assert before.json()["gemini_configured"] is False

        response = await client.put(
            "/api/admin/settings",
            json={"default_ai_provider": "Gemini", "gemini_api_key": "g-key", "session_grace_minutes": 5},
        )

        body = response.json()
        assert body["default_ai_provider"] == "gemini"
        assert body["gemini_configured"] is True
        assert body["session_grace_minutes"] == 5
        assert "gemini_api_key" not in body

    async def test_unknown_provider(self, client, current, make_user):
        current.user = await make_user(role="admin")
        response = await client.put("/api/admin/settings", json={"default_ai_provider": "claude"})
        assert response.status_code == 400


class TestSessionEvents:
    async def test_requires_redis(self, client, current, make_user):
        current.user = await make_user()
        response = await client.get("/api/sessions/abc/events")
        assert response.status_code == 503
