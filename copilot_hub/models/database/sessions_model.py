# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Shared shape of billable sessions (meetings, interviews, copilot sessions)."""
from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column


class SessionStatus(str, Enum):
    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"
    REJECTED = "REJECTED"
    ENDED = "ENDED"


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.ENDED, SessionStatus.EXPIRED})

# Statuses the expiry sweep is allowed to resolve.
ACTIVE_STATUSES = frozenset(
    {
        SessionStatus.SCHEDULED,
        SessionStatus.PENDING,
        SessionStatus.APPROVED,
        SessionStatus.IN_PROGRESS,
    }
)

_STATUS_RANK = {
    SessionStatus.DRAFT: 0,
    SessionStatus.SCHEDULED: 1,
    SessionStatus.PENDING: 1,
    SessionStatus.APPROVED: 2,
    SessionStatus.REJECTED: 2,
    SessionStatus.IN_PROGRESS: 3,
    SessionStatus.COMPLETED: 4,
    SessionStatus.ENDED: 4,
    SessionStatus.EXPIRED: 4,
}


def is_terminal(status: str) -> bool:
    return status in {s.value for s in TERMINAL_STATUSES}


def can_transition(current: str, new: str, admin_override: bool = False) -> bool:
    """Statuses only move forward; terminal ones stay put unless an admin overrides."""
    if admin_override:
        return True
    if current == new:
        return True
    if is_terminal(current):
        return False
    return _STATUS_RANK[SessionStatus(new)] >= _STATUS_RANK[SessionStatus(current)]


class SessionKind(str, Enum):
    MEETING = "meeting"
    INTERVIEW = "interview"
    COPILOT = "copilot"


class CreditPool(str, Enum):
    """Wallet pool names, matching the ``users`` balance columns."""

    AI_MINUTES = "ai_interview_credits"
    MENTOR_MINUTES = "mentor_session_credits"


class BillableSessionMixin:
    """Lifecycle and billing columns common to every session kind."""

    status: Mapped[str] = mapped_column(
        String(20), default=SessionStatus.SCHEDULED.value, index=True, nullable=False
    )
    scheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), index=True, nullable=True
    )
    session_started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    session_ended_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    total_session_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    billed_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    credit_charged: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    summary_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    summary_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    summary_updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Overridden per kind
    kind: ClassVar[SessionKind]
    credit_pool: ClassVar[CreditPool] = CreditPool.AI_MINUTES
    final_status: ClassVar[SessionStatus] = SessionStatus.COMPLETED

    @property
    def billing_owner_id(self):
        """Identity whose wallet pays for the session."""
        raise NotImplementedError

    def has_usage_evidence(self) -> bool:
        """Whether the session was actually used (drives COMPLETED vs EXPIRED)."""
        return (self.total_session_seconds or 0) > 0
