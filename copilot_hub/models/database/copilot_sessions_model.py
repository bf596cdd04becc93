# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Copilot session and its append-only child records."""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from copilot_hub.database import Base
from copilot_hub.models.database.sessions_model import (
    BillableSessionMixin,
    CreditPool,
    SessionKind,
    SessionStatus,
)

SCENARIO_TYPES = ("JOB_INTERVIEW", "TEAM_MEETING", "CLIENT_CALL", "CONSULTING", "OTHER")
TRANSCRIPT_SOURCES = ("extension", "console", "server", "mic", "tab", "other", "manual")


class CopilotSession(BillableSessionMixin, Base):
    """Ad-hoc live assistant session shared by the owner's extension, console and overlay."""

    __tablename__ = "copilot_sessions"

    kind = SessionKind.COPILOT
    credit_pool = CreditPool.AI_MINUTES
    final_status = SessionStatus.ENDED

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    attendee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    interview_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("interviews.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(255), default="Live Copilot Session", nullable=False)
    scenario_type: Mapped[str] = mapped_column(String(32), default="OTHER", nullable=False)
    target_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    join_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    session_metadata: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    transcript_entries: Mapped[list["CopilotTranscriptEntry"]] = relationship(
        "CopilotTranscriptEntry",
        order_by="CopilotTranscriptEntry.id",
        cascade="all, delete-orphan",
        lazy="noload",
    )
    devices: Mapped[list["ConnectedDevice"]] = relationship(
        "ConnectedDevice", cascade="all, delete-orphan", lazy="noload"
    )

    @property
    def billing_owner_id(self) -> uuid.UUID:
        return self.owner_id


class CopilotTranscriptEntry(Base):
    """One transcript fragment. Rows are only ever inserted."""

    __tablename__ = "copilot_transcript_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("copilot_sessions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(String(20), default="extension", nullable=False)
    ts: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class CopilotTopic(Base):
    __tablename__ = "copilot_topics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("copilot_sessions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    ts: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class CopilotAiMessage(Base):
    """Question/answer pair produced by the assistant."""

    __tablename__ = "copilot_ai_messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("copilot_sessions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    request_type: Mapped[str] = mapped_column(String(32), default="HELP_ME", nullable=False)
    provider: Mapped[str] = mapped_column(String(32), default="openai", nullable=False)
    question: Mapped[str] = mapped_column(Text, default="", nullable=False)
    answer: Mapped[str] = mapped_column(Text, default="", nullable=False)
    ts: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class ConnectedDevice(Base):
    """Live connection attached to a copilot session room."""

    __tablename__ = "connected_devices"
    __table_args__ = (
        UniqueConstraint("session_id", "connection_id", name="uq_connected_devices_connection"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("copilot_sessions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    connection_id: Mapped[str] = mapped_column(String(64), nullable=False)
    device_type: Mapped[str] = mapped_column(String(20), default="unknown", nullable=False)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
