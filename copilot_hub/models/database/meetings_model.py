# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Meeting SQLAlchemy model."""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from copilot_hub.database import Base
from copilot_hub.models.database.sessions_model import (
    BillableSessionMixin,
    CreditPool,
    SessionKind,
    SessionStatus,
)


class Meeting(BillableSessionMixin, Base):
    """Scheduled mentor meeting, billed against the host's mentor minutes."""

    __tablename__ = "meetings"

    kind = SessionKind.MEETING
    credit_pool = CreditPool.MENTOR_MINUTES
    final_status = SessionStatus.COMPLETED

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    host_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    attendee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    meeting_key: Mapped[str] = mapped_column(String(16), index=True, nullable=False)
    host_joined_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    attendee_joined_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    transcript: Mapped[str] = mapped_column(Text, default="", nullable=False)

    @property
    def billing_owner_id(self) -> uuid.UUID:
        return self.host_id

    def has_usage_evidence(self) -> bool:
        return self.host_joined_at is not None or (self.total_session_seconds or 0) > 0
