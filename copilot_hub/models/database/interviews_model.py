# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Interview SQLAlchemy model."""
import uuid
from typing import Optional

from sqlalchemy import JSON, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from copilot_hub.database import Base
from copilot_hub.models.database.sessions_model import (
    BillableSessionMixin,
    CreditPool,
    SessionKind,
    SessionStatus,
)


class Interview(BillableSessionMixin, Base):
    """Scheduled interview, billed against the owner's AI minutes."""

    __tablename__ = "interviews"

    kind = SessionKind.INTERVIEW
    credit_pool = CreditPool.AI_MINUTES
    final_status = SessionStatus.COMPLETED

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    job_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resume_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    keywords: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    additional_info: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def billing_owner_id(self) -> uuid.UUID:
        return self.owner_id

    def has_usage_evidence(self) -> bool:
        return self.session_started_at is not None or (self.total_session_seconds or 0) > 0
