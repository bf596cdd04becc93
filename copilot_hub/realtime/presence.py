# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Room membership and event fanout for live sessions."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set
from uuid import UUID

from copilot_hub.errors import NotJoinedError
from copilot_hub.realtime.events import EventKind, wire_names

logger = logging.getLogger(__name__)

CONSOLE = "console"
OVERLAY = "overlay"
CLIENT_DEVICE_TYPES = frozenset({CONSOLE, OVERLAY})


def copilot_room(session_id: UUID) -> str:
    return f"copilot:{session_id}"


def meeting_room(meeting_id: UUID) -> str:
    return f"meeting:{meeting_id}"


def join_code_matches(stored: Optional[str], presented: Optional[str]) -> bool:
    """Case-insensitive join code check; a session without a code admits nobody but its owner."""
    if not stored or not presented:
        return False
    return stored.strip().upper() == presented.strip().upper()


@dataclass
class CopilotMembership:
    session_id: UUID
    is_owner: bool
    device_type: str


@dataclass
class MeetingMembership:
    meeting_id: UUID
    is_host: bool


@dataclass
class ConnectionContext:
    """What the server knows about one socket connection."""

    sid: str
    user_id: UUID
    copilot: Optional[CopilotMembership] = None
    meeting: Optional[MeetingMembership] = None


@dataclass
class PendingCodeRequest:
    """A CODE request waiting for its screenshots."""

    provider: Optional[str]
    messages: List[Dict[str, Any]]
    requester_sid: str


@dataclass
class _SessionState:
    screenshots: List[str] = field(default_factory=list)
    pending: Optional[PendingCodeRequest] = None
    stream_cancel: Optional[asyncio.Event] = None


class LiveSessionStore:
    """
    Process-local state for live copilot sessions.

    Buffered screenshots, queued CODE requests and active stream cancel signals live here. None of
    it is persisted; a restart drops it and the next interaction rebuilds what it needs.
    """

    def __init__(self, max_screenshots: int = 6):
        self.max_screenshots = max_screenshots
        self._sessions: Dict[UUID, _SessionState] = {}
        self._finalize_tasks: Dict[UUID, asyncio.Task] = {}

    def _state(self, session_id: UUID) -> _SessionState:
        return self._sessions.setdefault(session_id, _SessionState())

    def add_screenshot(self, session_id: UUID, image: str) -> List[str]:
        """Buffer a screenshot, keeping only the most recent ones."""
        state = self._state(session_id)
        state.screenshots = (state.screenshots + [image])[-self.max_screenshots:]
        return list(state.screenshots)

    def screenshots(self, session_id: UUID) -> List[str]:
        state = self._sessions.get(session_id)
        return list(state.screenshots) if state else []

    def clear_screenshots(self, session_id: UUID) -> None:
        state = self._sessions.get(session_id)
        if state:
            state.screenshots = []

    def set_pending(self, session_id: UUID, request: PendingCodeRequest) -> None:
        self._state(session_id).pending = request

    def pending(self, session_id: UUID) -> Optional[PendingCodeRequest]:
        state = self._sessions.get(session_id)
        return state.pending if state else None

    def clear_pending(self, session_id: UUID) -> None:
        state = self._sessions.get(session_id)
        if state:
            state.pending = None

    def begin_stream(self, session_id: UUID) -> asyncio.Event:
        """Cancel signal for a new stream; any stream still running for the session is cancelled."""
        state = self._state(session_id)
        if state.stream_cancel is not None:
            state.stream_cancel.set()
        state.stream_cancel = asyncio.Event()
        return state.stream_cancel

    def end_stream(self, session_id: UUID, cancel_event: asyncio.Event) -> None:
        state = self._sessions.get(session_id)
        if state and state.stream_cancel is cancel_event:
            state.stream_cancel = None

    def cancel_stream(self, session_id: UUID) -> bool:
        state = self._sessions.get(session_id)
        if state is None or state.stream_cancel is None:
            return False
        state.stream_cancel.set()
        state.stream_cancel = None
        return True

    def release(self, session_id: UUID) -> None:
        """Drop everything held for a session and stop its stream."""
        self.cancel_stream(session_id)
        self._sessions.pop(session_id, None)

    def has_state(self, session_id: UUID) -> bool:
        return session_id in self._sessions

    def schedule_finalize(self, session_id: UUID, task: asyncio.Task) -> None:
        previous = self._finalize_tasks.get(session_id)
        if previous is not None and not previous.done():
            previous.cancel()
        self._finalize_tasks[session_id] = task
        task.add_done_callback(lambda t: self._forget_finalize(session_id, t))

    def cancel_finalize(self, session_id: UUID) -> bool:
        task = self._finalize_tasks.pop(session_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def _forget_finalize(self, session_id: UUID, task: asyncio.Task) -> None:
        if self._finalize_tasks.get(session_id) is task:
            del self._finalize_tasks[session_id]

    async def close(self) -> None:
        for session_id in list(self._sessions):
            self.release(session_id)
        tasks = [t for t in self._finalize_tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._finalize_tasks.clear()


class PresenceRouter:
    """
    Tracks which connection sits in which room and fans events out to them.

    Room membership is mirrored locally so filtered fanout (consoles only, consoles and overlays)
    can pick connections by device type without another lookup.
    """

    def __init__(self, sio, store: LiveSessionStore):
        self.sio = sio
        self.store = store
        self._connections: Dict[str, ConnectionContext] = {}
        self._rooms: Dict[str, Set[str]] = {}

    # Connections

    def register(self, sid: str, user_id: UUID) -> ConnectionContext:
        context = ConnectionContext(sid=sid, user_id=user_id)
        self._connections[sid] = context
        return context

    def context(self, sid: str) -> Optional[ConnectionContext]:
        return self._connections.get(sid)

    def require_context(self, sid: str) -> ConnectionContext:
        context = self._connections.get(sid)
        if context is None:
            raise NotJoinedError("Unauthorized")
        return context

    async def unregister(self, sid: str) -> Optional[ConnectionContext]:
        """Forget a connection and leave every room it was in."""
        context = self._connections.pop(sid, None)
        for room, members in list(self._rooms.items()):
            if sid in members:
                await self._leave(sid, room)
        return context

    # Rooms

    async def join_copilot(
        self, sid: str, session_id: UUID, is_owner: bool, device_type: str
    ) -> CopilotMembership:
        context = self.require_context(sid)
        if context.copilot is not None and context.copilot.session_id != session_id:
            await self._leave(sid, copilot_room(context.copilot.session_id))
        context.copilot = CopilotMembership(session_id, is_owner, device_type)
        await self._enter(sid, copilot_room(session_id))
        return context.copilot

    async def join_meeting(self, sid: str, meeting_id: UUID, is_host: bool) -> MeetingMembership:
        context = self.require_context(sid)
        if context.meeting is not None and context.meeting.meeting_id != meeting_id:
            await self._leave(sid, meeting_room(context.meeting.meeting_id))
        context.meeting = MeetingMembership(meeting_id, is_host)
        await self._enter(sid, meeting_room(meeting_id))
        return context.meeting

    def require_copilot(self, sid: str, session_id: Optional[UUID] = None) -> CopilotMembership:
        """Membership for the room an event acts on; the joined room when none is named."""
        context = self._connections.get(sid)
        membership = context.copilot if context else None
        if membership is None or (session_id is not None and membership.session_id != session_id):
            raise NotJoinedError("Join session first")
        return membership

    def require_meeting(self, sid: str, meeting_id: Optional[UUID] = None) -> MeetingMembership:
        context = self._connections.get(sid)
        membership = context.meeting if context else None
        if membership is None or (meeting_id is not None and membership.meeting_id != meeting_id):
            raise NotJoinedError("Join the meeting first")
        return membership

    def members(self, room: str) -> Set[str]:
        return set(self._rooms.get(room, ()))

    def copilot_members(self, session_id: UUID, device_types=None) -> List[str]:
        sids = []
        for sid in sorted(self._rooms.get(copilot_room(session_id), ())):
            context = self._connections.get(sid)
            if context is None or context.copilot is None:
                continue
            if device_types is None or context.copilot.device_type in device_types:
                sids.append(sid)
        return sids

    def owner_connections(self, session_id: UUID) -> List[str]:
        return [
            sid
            for sid in self.copilot_members(session_id)
            if self._connections[sid].copilot.is_owner
        ]

    async def _enter(self, sid: str, room: str) -> None:
        self._rooms.setdefault(room, set()).add(sid)
        await self.sio.enter_room(sid, room)

    async def _leave(self, sid: str, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(sid)
            if not members:
                del self._rooms[room]
        await self.sio.leave_room(sid, room)

    # Fanout

    async def emit_to(self, sid: str, event: EventKind, payload: Dict[str, Any]) -> None:
        for name in wire_names(event):
            await self.sio.emit(name, payload, to=sid)

    async def broadcast(
        self, room: str, event: EventKind, payload: Dict[str, Any], skip_sid: Optional[str] = None
    ) -> None:
        """Emit to everyone in a room, optionally excluding the sender."""
        for name in wire_names(event):
            await self.sio.emit(name, payload, room=room, skip_sid=skip_sid)

    async def broadcast_copilot(self, session_id: UUID, event: EventKind, payload: Dict[str, Any]) -> None:
        await self.broadcast(copilot_room(session_id), event, payload)

    async def broadcast_to_consoles(
        self, session_id: UUID, event: EventKind, payload: Dict[str, Any]
    ) -> None:
        """Emit to console devices only (capture cues)."""
        for sid in self.copilot_members(session_id, {CONSOLE}):
            await self.emit_to(sid, event, payload)

    async def broadcast_to_clients(
        self, session_id: UUID, event: EventKind, payload: Dict[str, Any]
    ) -> None:
        """Emit to consoles and overlays (tokens and answers); ingestion-only devices are skipped."""
        for sid in self.copilot_members(session_id, CLIENT_DEVICE_TYPES):
            await self.emit_to(sid, event, payload)

    async def broadcast_meeting(
        self, meeting_id: UUID, event: EventKind, payload: Dict[str, Any], skip_sid: Optional[str] = None
    ) -> None:
        await self.broadcast(meeting_room(meeting_id), event, payload, skip_sid=skip_sid)
