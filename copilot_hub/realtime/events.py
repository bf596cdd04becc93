# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Event kinds and the wire-name adapter.

Copilot events travel under two names, ``copilot_<name>`` and the legacy ``copilot:<name>``.
Inbound, either name maps to one ``CopilotEvent``; outbound, every emit goes out on both.
Meeting events have a single wire name equal to the enum value.
"""
from enum import Enum
from typing import List, Optional, Tuple, Union

COPILOT_PREFIXES = ("copilot_", "copilot:")


class CopilotEvent(str, Enum):
    # inbound
    JOIN = "join"
    TRANSCRIPT_CHUNK = "transcript_chunk"
    TOPIC_EVENT = "topic_event"
    AI_REQUEST = "ai_request"
    END = "end"
    CAPTURE_UPLOAD = "capture_upload"
    SCREEN_CAPTURE = "screen_capture"
    CLEAR_SCREENS = "clear_screens"
    # outbound
    JOINED = "joined"
    STATE = "state"
    CAPTURE_STATE = "capture_state"
    PRESENCE = "presence"
    AI_STATUS = "ai_status"
    AI_TOKEN = "ai_token"
    AI_RESPONSE = "ai_response"
    CAPTURE_REQUESTED = "capture_requested"
    CAPTURE_SAVED = "capture_saved"
    CAPTURE_CLEARED = "capture_cleared"
    ERROR = "error"


INBOUND_COPILOT_EVENTS = (
    CopilotEvent.JOIN,
    CopilotEvent.TRANSCRIPT_CHUNK,
    CopilotEvent.TOPIC_EVENT,
    CopilotEvent.AI_REQUEST,
    CopilotEvent.END,
    CopilotEvent.CAPTURE_UPLOAD,
    CopilotEvent.SCREEN_CAPTURE,
    CopilotEvent.CLEAR_SCREENS,
)


class MeetingEvent(str, Enum):
    # inbound
    JOIN = "join_meeting"
    TRANSCRIPT_CHUNK = "meeting_transcript_chunk"
    TRANSCRIPT_INTERIM = "meeting_transcript_interim"
    STATUS_UPDATE = "meeting_status_update"
    END = "meeting_end"
    # outbound
    JOINED = "meeting_joined"
    STATUS = "meeting_status"
    ERROR = "meeting_error"


INBOUND_MEETING_EVENTS = (
    MeetingEvent.JOIN,
    MeetingEvent.TRANSCRIPT_CHUNK,
    MeetingEvent.TRANSCRIPT_INTERIM,
    MeetingEvent.STATUS_UPDATE,
    MeetingEvent.END,
)

EventKind = Union[CopilotEvent, MeetingEvent]


def wire_names(event: EventKind) -> Tuple[str, ...]:
    """Names an outbound event is emitted under."""
    if isinstance(event, CopilotEvent):
        return tuple(f"{prefix}{event.value}" for prefix in COPILOT_PREFIXES)
    return (event.value,)


def parse_wire_name(name: str) -> Optional[EventKind]:
    """Map an inbound wire name to its event kind, or None if it is not one we accept."""
    for prefix in COPILOT_PREFIXES:
        if name.startswith(prefix):
            base = name[len(prefix):]
            for event in INBOUND_COPILOT_EVENTS:
                if event.value == base:
                    return event
            return None
    for event in INBOUND_MEETING_EVENTS:
        if event.value == name:
            return event
    return None


def inbound_wire_names() -> List[str]:
    """Every inbound name the gateway registers a handler for."""
    names = [name for event in INBOUND_COPILOT_EVENTS for name in wire_names(event)]
    names.extend(event.value for event in INBOUND_MEETING_EVENTS)
    return names


def error_event_for(event: EventKind) -> EventKind:
    """Error channel matching the family of the inbound event."""
    return CopilotEvent.ERROR if isinstance(event, CopilotEvent) else MeetingEvent.ERROR
