# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Socket handlers for copilot rooms (extension, console and overlay devices)."""
import asyncio
import logging
from typing import Any, Dict, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from copilot_hub.errors import ForbiddenError, SessionNotFoundError
from copilot_hub.models import database as db_models
from copilot_hub.models.api.socket_schema import (
    AiRequestPayload,
    CaptureUploadPayload,
    CopilotJoinPayload,
    CopilotScopedPayload,
    TopicEventPayload,
    TranscriptChunkPayload,
)
from copilot_hub.models.database import SessionKind, SessionStatus
from copilot_hub.models.database.sessions_model import is_terminal
from copilot_hub.realtime.events import CopilotEvent
from copilot_hub.realtime.presence import (
    ConnectionContext,
    LiveSessionStore,
    PendingCodeRequest,
    PresenceRouter,
    join_code_matches,
)
from copilot_hub.repositories import CopilotSessionRepository
from copilot_hub.services.ai_provider import AIProvider
from copilot_hub.services.copilot_assistant import CODE_REQUEST, CopilotAssistant
from copilot_hub.services.finalizer import SHORTFALL_MESSAGES, SessionFinalizer
from copilot_hub.utils.timeutils import isoformat, utcnow

logger = logging.getLogger(__name__)

SCREENSHOT_SAVED_MESSAGE = "Screenshot saved. You can take more or press Code to generate a solution."


def _transcript_item(entry: db_models.CopilotTranscriptEntry) -> Dict[str, Any]:
    return {"text": entry.text, "ts": isoformat(entry.ts), "source": entry.source}


def _topic_item(topic: db_models.CopilotTopic) -> Dict[str, Any]:
    return {"text": topic.text, "ts": isoformat(topic.ts)}


def _ai_message_item(message: db_models.CopilotAiMessage) -> Dict[str, Any]:
    return {
        "type": message.request_type,
        "role": "assistant",
        "content": message.answer,
        "ts": isoformat(message.ts),
    }


class CopilotHandlers:
    """Handlers for the copilot event family.

    Every handler except join acts only on the room the connection joined; a mismatch raises
    NotJoinedError, which the gateway turns into an error event for the sender.
    """

    def __init__(
        self,
        router: PresenceRouter,
        store: LiveSessionStore,
        session_factory: async_sessionmaker[AsyncSession],
        assistant: CopilotAssistant,
        finalizer: SessionFinalizer,
        max_devices: int = 20,
        finalize_on_owner_disconnect: bool = True,
        owner_disconnect_grace: float = 30.0,
    ):
        self.router = router
        self.store = store
        self.session_factory = session_factory
        self.assistant = assistant
        self.finalizer = finalizer
        self.max_devices = max_devices
        self.finalize_on_owner_disconnect = finalize_on_owner_disconnect
        self.owner_disconnect_grace = owner_disconnect_grace

    async def on_join(self, sid: str, payload: CopilotJoinPayload) -> None:
        context = self.router.require_context(sid)
        async with self.session_factory() as db:
            repo = CopilotSessionRepository(db)
            session = await repo.get_by_id(payload.session_id)
            if session is None:
                raise SessionNotFoundError()

            is_owner = session.owner_id == context.user_id
            if not is_owner:
                if not join_code_matches(session.join_code, payload.join_code):
                    logger.info(f"Join of copilot session {session.id} by {context.user_id} refused: bad code")
                    raise ForbiddenError()
                if not await repo.bind_attendee(session.id, context.user_id):
                    logger.info(f"Join of copilot session {session.id} by {context.user_id} refused: attendee slot taken")
                    raise ForbiddenError()

            if is_terminal(session.status):
                count = await repo.count_devices(session.id)
            else:
                count = await repo.replace_device(
                    session.id, sid, payload.device_type, cap=self.max_devices
                )
            transcript = [_transcript_item(e) for e in await repo.list_transcript(session.id)]
            topics = [_topic_item(t) for t in await repo.list_topics(session.id)]
            ai_messages = [_ai_message_item(m) for m in await repo.list_ai_messages(session.id)]
            await db.commit()

        if is_owner and self.store.cancel_finalize(session.id):
            logger.info(f"Owner rejoined copilot session {session.id}; pending finalize cancelled")
        await self.router.join_copilot(sid, session.id, is_owner, payload.device_type)
        logger.info(f"Connection {sid} joined copilot session {session.id} as {payload.device_type}")

        await self.router.emit_to(
            sid,
            CopilotEvent.JOINED,
            {
                "sessionId": str(session.id),
                "status": session.status,
                "title": session.title,
                "scenarioType": session.scenario_type,
                "targetUrl": session.target_url,
                "joinCode": session.join_code if is_owner else None,
                "isOwner": is_owner,
            },
        )
        await self.router.emit_to(
            sid,
            CopilotEvent.STATE,
            {"transcript": transcript, "topics": topics, "aiMessages": ai_messages},
        )
        images = self.store.screenshots(session.id)
        if payload.device_type == "console" and images:
            await self.router.emit_to(sid, CopilotEvent.CAPTURE_STATE, {"images": images})
        await self.router.broadcast_copilot(session.id, CopilotEvent.PRESENCE, {"count": count})

    async def on_transcript_chunk(self, sid: str, payload: TranscriptChunkPayload) -> None:
        membership = self.router.require_copilot(sid, payload.session_id)
        if not payload.text:
            return
        async with self.session_factory() as db:
            entry = await CopilotSessionRepository(db).append_transcript(
                membership.session_id, payload.text, payload.source, utcnow()
            )
            await db.commit()
        await self.router.broadcast_copilot(
            membership.session_id,
            CopilotEvent.TRANSCRIPT_CHUNK,
            _transcript_item(entry),
        )

    async def on_topic_event(self, sid: str, payload: TopicEventPayload) -> None:
        membership = self.router.require_copilot(sid, payload.session_id)
        if not payload.text:
            return
        async with self.session_factory() as db:
            topic = await CopilotSessionRepository(db).append_topic(
                membership.session_id, payload.text, utcnow()
            )
            await db.commit()
        await self.router.broadcast_copilot(
            membership.session_id, CopilotEvent.TOPIC_EVENT, _topic_item(topic)
        )

    async def on_ai_request(self, sid: str, payload: AiRequestPayload) -> None:
        membership = self.router.require_copilot(sid, payload.session_id)
        session_id = membership.session_id
        request_type = payload.request_type
        provider = AIProvider.OPENAI.value if request_type == CODE_REQUEST else payload.provider
        messages = [m.model_dump(include={"role", "content"}) for m in payload.messages]

        await self._status(session_id, "running", request_type)
        try:
            messages = await self.assistant.prepare_messages(session_id, messages)
            if request_type == CODE_REQUEST:
                pending = PendingCodeRequest(provider=provider, messages=messages, requester_sid=sid)
                self.store.set_pending(session_id, pending)
                images = self.store.screenshots(session_id)
                if images:
                    await self._solve_code(session_id, pending, images)
                else:
                    await self.router.broadcast_copilot(
                        session_id, CopilotEvent.CAPTURE_REQUESTED, {"type": CODE_REQUEST}
                    )
                return

            async def on_token(token: str) -> None:
                await self.router.broadcast_to_clients(
                    session_id,
                    CopilotEvent.AI_TOKEN,
                    {"type": request_type, "token": token, "ts": isoformat(utcnow())},
                )

            cancel_event = self.store.begin_stream(session_id)
            try:
                message = await self.assistant.answer(
                    session_id, request_type, provider, messages, on_token, cancel_event
                )
            finally:
                self.store.end_stream(session_id, cancel_event)
            if cancel_event.is_set():
                logger.info(f"AI request for copilot session {session_id} was cancelled")
                return
            await self._respond(session_id, request_type, message.answer, message.ts)
        except Exception as e:
            logger.error(f"AI request failed for copilot session {session_id}: {e}", exc_info=True)
            await self._status(session_id, "error", request_type, message=str(e) or "AI failed")

    async def on_capture_upload(self, sid: str, payload: CaptureUploadPayload) -> None:
        membership = self.router.require_copilot(sid, payload.session_id)
        session_id = membership.session_id
        images = self.store.add_screenshot(session_id, payload.image)
        await self.router.broadcast_to_consoles(
            session_id,
            CopilotEvent.CAPTURE_SAVED,
            {"image": payload.image, "ts": isoformat(utcnow()), "count": len(images)},
        )
        pending = self.store.pending(session_id)
        if pending is not None:
            await self._solve_code(session_id, pending, images)
            return
        await self._respond(session_id, payload.request_type, SCREENSHOT_SAVED_MESSAGE, utcnow())

    async def on_screen_capture(self, sid: str, payload: CopilotScopedPayload) -> None:
        membership = self.router.require_copilot(sid, payload.session_id)
        await self.router.broadcast_copilot(
            membership.session_id, CopilotEvent.CAPTURE_REQUESTED, {"type": "SCREEN"}
        )
        await self._status(membership.session_id, "running", "SCREEN")

    async def on_clear_screens(self, sid: str, payload: CopilotScopedPayload) -> None:
        membership = self.router.require_copilot(sid, payload.session_id)
        self.store.clear_screenshots(membership.session_id)
        self.store.clear_pending(membership.session_id)
        await self.router.broadcast_to_consoles(
            membership.session_id, CopilotEvent.CAPTURE_CLEARED, {"ts": isoformat(utcnow())}
        )

    async def on_end(self, sid: str, payload: CopilotScopedPayload) -> None:
        """Owner ends the session: finalize billing and tell every device."""
        membership = self.router.require_copilot(sid, payload.session_id)
        if not membership.is_owner:
            raise ForbiddenError()
        session_id = membership.session_id
        self.store.cancel_finalize(session_id)
        self.store.release(session_id)

        result = await self.finalizer.finalize(
            SessionKind.COPILOT, session_id, raise_on_shortfall=False
        )
        await self.router.broadcast_copilot(
            session_id, CopilotEvent.END, {"sessionId": str(session_id), "status": result.status}
        )
        await self.router.broadcast_copilot(session_id, CopilotEvent.PRESENCE, {"count": 0})
        if result.insufficient_credits:
            await self.router.emit_to(
                sid,
                CopilotEvent.ERROR,
                {"message": SHORTFALL_MESSAGES[db_models.CopilotSession.credit_pool]},
            )

    async def on_disconnect(self, sid: str, context: ConnectionContext) -> None:
        """Drop the device, update presence and release per-session state the connection held."""
        membership = context.copilot
        if membership is None:
            return
        session_id = membership.session_id

        async with self.session_factory() as db:
            repo = CopilotSessionRepository(db)
            count = await repo.remove_device(session_id, sid)
            session = await repo.get_by_id(session_id)
            status = session.status if session else None
            await db.commit()
        await self.router.broadcast_copilot(session_id, CopilotEvent.PRESENCE, {"count": count})

        if not self.router.copilot_members(session_id):
            self.store.release(session_id)
        else:
            pending = self.store.pending(session_id)
            if pending is not None and pending.requester_sid == sid:
                self.store.clear_pending(session_id)
                self.store.clear_screenshots(session_id)

        if (
            membership.is_owner
            and self.finalize_on_owner_disconnect
            and status == SessionStatus.IN_PROGRESS.value
            and not self.router.owner_connections(session_id)
        ):
            task = asyncio.create_task(self._finalize_after_grace(session_id))
            self.store.schedule_finalize(session_id, task)

    async def _finalize_after_grace(self, session_id: UUID) -> None:
        await asyncio.sleep(self.owner_disconnect_grace)
        if self.router.owner_connections(session_id):
            return
        try:
            result = await self.finalizer.finalize(
                SessionKind.COPILOT, session_id, raise_on_shortfall=False
            )
        except Exception as e:
            logger.error(f"Finalize after owner disconnect failed for {session_id}: {e}", exc_info=True)
            return
        self.store.release(session_id)
        logger.info(f"Copilot session {session_id} finalized after owner disconnect ({result.status})")
        await self.router.broadcast_copilot(
            session_id, CopilotEvent.END, {"sessionId": str(session_id), "status": result.status}
        )

    async def _solve_code(self, session_id: UUID, pending: PendingCodeRequest, images: List[str]) -> None:
        try:
            message = await self.assistant.solve_from_screenshots(
                session_id, pending.provider, pending.messages, images
            )
        except Exception as e:
            logger.error(f"CODE request failed for copilot session {session_id}: {e}", exc_info=True)
            self.store.clear_pending(session_id)
            await self._status(session_id, "error", CODE_REQUEST, message=str(e) or "AI failed")
            return
        self.store.clear_pending(session_id)
        await self._respond(session_id, CODE_REQUEST, message.answer, message.ts)

    async def _respond(self, session_id: UUID, request_type: str, content: str, ts) -> None:
        await self.router.broadcast_to_clients(
            session_id,
            CopilotEvent.AI_RESPONSE,
            {"type": request_type, "content": content, "ts": isoformat(ts)},
        )
        await self._status(session_id, "done", request_type)

    async def _status(self, session_id: UUID, status: str, request_type: str, **extra: Any) -> None:
        await self.router.broadcast_to_clients(
            session_id, CopilotEvent.AI_STATUS, {"status": status, "type": request_type, **extra}
        )
