# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Payload schemas for inbound Socket.IO events.

Payloads arrive with camelCase keys from the browser extension and console; every event is
validated against its schema before it reaches a handler.
"""
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from copilot_hub.models.database.copilot_sessions_model import TRANSCRIPT_SOURCES

DEVICE_TYPES = ("console", "overlay", "extension")


class SocketPayload(BaseModel):
    """Base for socket payloads: accept wire aliases, ignore unknown keys."""

    class Config:
        populate_by_name = True
        extra = "ignore"


class CopilotJoinPayload(SocketPayload):
    session_id: UUID = Field(..., alias="sessionId")
    join_code: Optional[str] = Field(None, alias="joinCode", max_length=32)
    device_type: str = Field("unknown", alias="deviceType")

    @field_validator("device_type", mode="before")
    @classmethod
    def normalize_device_type(cls, value: Any) -> str:
        normalized = str(value or "").strip().lower()
        return normalized if normalized in DEVICE_TYPES else "unknown"


class CopilotScopedPayload(SocketPayload):
    """Events that act on a joined room; the session id defaults to the joined one."""

    session_id: Optional[UUID] = Field(None, alias="sessionId")


class TranscriptChunkPayload(CopilotScopedPayload):
    text: str = ""
    source: str = "extension"

    @field_validator("text", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> str:
        return str(value).strip() if value is not None else ""

    @field_validator("source", mode="before")
    @classmethod
    def normalize_source(cls, value: Any) -> str:
        normalized = str(value or "").strip().lower()
        return normalized if normalized in TRANSCRIPT_SOURCES else "extension"


class TopicEventPayload(CopilotScopedPayload):
    text: str = ""

    @field_validator("text", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> str:
        return str(value).strip() if value is not None else ""


class ChatMessage(SocketPayload):
    role: str = Field(..., min_length=1)
    content: Union[str, List[Dict[str, Any]]] = ""


class AiRequestPayload(CopilotScopedPayload):
    provider: Optional[str] = None
    request_type: str = Field("HELP_ME", alias="type")
    messages: List[ChatMessage] = Field(..., min_length=1)

    @field_validator("request_type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> str:
        return str(value or "HELP_ME").strip().upper() or "HELP_ME"


class CaptureUploadPayload(CopilotScopedPayload):
    image: str = Field(..., min_length=1)
    request_type: str = Field("SCREEN", alias="type")

    @field_validator("request_type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> str:
        return str(value or "SCREEN").strip().upper() or "SCREEN"


class MeetingJoinPayload(SocketPayload):
    meeting_id: UUID = Field(..., alias="meetingId")
    meeting_key: str = Field(..., alias="meetingKey", min_length=1, max_length=32)

    @field_validator("meeting_key", mode="before")
    @classmethod
    def normalize_key(cls, value: Any) -> str:
        return str(value or "").strip().upper()


class MeetingScopedPayload(SocketPayload):
    meeting_id: Optional[UUID] = Field(None, alias="meetingId")


class MeetingTranscriptPayload(MeetingScopedPayload):
    text: str = ""
    timestamp: Optional[str] = None
    speaker: Optional[str] = Field(None, alias="from")

    @field_validator("text", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> str:
        return str(value).strip() if value is not None else ""


class MeetingStatusPayload(MeetingScopedPayload):
    status: str = Field(..., min_length=1)
