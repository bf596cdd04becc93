# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Socket.IO server and event dispatch."""
import logging
from typing import Any, Dict, Tuple, Type

import socketio
from pydantic import ValidationError

from copilot_hub.deps import Settings
from copilot_hub.errors import CopilotHubError
from copilot_hub.middleware.auth import Authenticator, TokenError, extract_socket_token
from copilot_hub.models.api.socket_schema import (
    AiRequestPayload,
    CaptureUploadPayload,
    CopilotJoinPayload,
    CopilotScopedPayload,
    MeetingJoinPayload,
    MeetingScopedPayload,
    MeetingStatusPayload,
    MeetingTranscriptPayload,
    SocketPayload,
    TopicEventPayload,
    TranscriptChunkPayload,
)
from copilot_hub.realtime.copilot_handlers import CopilotHandlers
from copilot_hub.realtime.events import (
    CopilotEvent,
    EventKind,
    MeetingEvent,
    error_event_for,
    inbound_wire_names,
    parse_wire_name,
)
from copilot_hub.realtime.meeting_handlers import MeetingHandlers
from copilot_hub.realtime.presence import PresenceRouter

logger = logging.getLogger(__name__)

# event -> (payload schema, handler attribute)
ROUTES: Dict[EventKind, Tuple[Type[SocketPayload], str]] = {
    CopilotEvent.JOIN: (CopilotJoinPayload, "on_join"),
    CopilotEvent.TRANSCRIPT_CHUNK: (TranscriptChunkPayload, "on_transcript_chunk"),
    CopilotEvent.TOPIC_EVENT: (TopicEventPayload, "on_topic_event"),
    CopilotEvent.AI_REQUEST: (AiRequestPayload, "on_ai_request"),
    CopilotEvent.END: (CopilotScopedPayload, "on_end"),
    CopilotEvent.CAPTURE_UPLOAD: (CaptureUploadPayload, "on_capture_upload"),
    CopilotEvent.SCREEN_CAPTURE: (CopilotScopedPayload, "on_screen_capture"),
    CopilotEvent.CLEAR_SCREENS: (CopilotScopedPayload, "on_clear_screens"),
    MeetingEvent.JOIN: (MeetingJoinPayload, "on_join"),
    MeetingEvent.TRANSCRIPT_CHUNK: (MeetingTranscriptPayload, "on_transcript_chunk"),
    MeetingEvent.TRANSCRIPT_INTERIM: (MeetingTranscriptPayload, "on_transcript_interim"),
    MeetingEvent.STATUS_UPDATE: (MeetingStatusPayload, "on_status_update"),
    MeetingEvent.END: (MeetingScopedPayload, "on_end"),
}


def create_socket_server(settings: Settings) -> socketio.AsyncServer:
    """ASGI Socket.IO server; with Redis enabled, emits reach clients on every process."""
    client_manager = socketio.AsyncRedisManager(settings.redis_url) if settings.enable_redis else None
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=settings.allowed_origins or "*",
        client_manager=client_manager,
        logger=False,
        engineio_logger=False,
    )


def validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "payload"
    if first.get("type") == "missing":
        return f"Missing {field}"
    return f"Invalid {field}: {first.get('msg', 'invalid value')}"


class RealtimeGateway:
    """Authenticates connections, validates payloads and dispatches them to handlers.

    Handler errors never escape: they are reported to the originating connection on the error
    event of the matching family.
    """

    def __init__(
        self,
        sio: socketio.AsyncServer,
        router: PresenceRouter,
        authenticator: Authenticator,
        copilot: CopilotHandlers,
        meeting: MeetingHandlers,
    ):
        self.sio = sio
        self.router = router
        self.authenticator = authenticator
        self.copilot = copilot
        self.meeting = meeting

    def register(self) -> None:
        self.sio.on("connect", handler=self.on_connect)
        self.sio.on("disconnect", handler=self.on_disconnect)
        for name in inbound_wire_names():
            self.sio.on(name, handler=self._handler_for(name))

    def _handler_for(self, name: str):
        event = parse_wire_name(name)

        async def handle(sid: str, data: Any = None) -> None:
            await self.dispatch(event, sid, data)

        return handle

    async def on_connect(self, sid: str, environ: Dict[str, Any], auth: Any = None) -> None:
        token = extract_socket_token(auth, environ)
        try:
            user = await self.authenticator.authenticate(token)
        except TokenError as e:
            logger.info(f"Socket connection {sid} rejected: {e}")
            raise socketio.exceptions.ConnectionRefusedError(f"UNAUTHORIZED: {e}")
        self.router.register(sid, user.id)
        logger.debug(f"Socket connection {sid} authenticated as {user.id}")

    async def on_disconnect(self, sid: str, *args: Any) -> None:
        context = await self.router.unregister(sid)
        if context is None:
            return
        try:
            await self.copilot.on_disconnect(sid, context)
        except Exception as e:
            logger.error(f"Disconnect cleanup failed for {sid}: {e}", exc_info=True)

    async def dispatch(self, event: EventKind, sid: str, data: Any) -> None:
        schema, attribute = ROUTES[event]
        error_event = error_event_for(event)
        try:
            payload = schema.model_validate(data if isinstance(data, dict) else {})
        except ValidationError as e:
            await self.router.emit_to(sid, error_event, {"message": validation_message(e)})
            return

        handlers = self.copilot if isinstance(event, CopilotEvent) else self.meeting
        try:
            await getattr(handlers, attribute)(sid, payload)
        except CopilotHubError as e:
            logger.info(f"{event.value} from {sid} rejected: {e.message}")
            await self.router.emit_to(sid, error_event, {"message": e.message, "code": e.code})
        except Exception as e:
            logger.error(f"{event.value} from {sid} failed: {e}", exc_info=True)
            await self.router.emit_to(sid, error_event, {"message": "Internal server error"})
