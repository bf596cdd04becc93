# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""User SQLAlchemy model."""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from copilot_hub.database import Base


class User(Base):
    """User account with its credit wallet.

    The wallet is split into two independent pools: AI interview minutes (copilot and interview
    sessions) and mentor minutes (meetings). Balances never go below zero.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("ai_interview_credits >= 0", name="ck_users_ai_credits_non_negative"),
        CheckConstraint("mentor_session_credits >= 0", name="ck_users_mentor_credits_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), default="user", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    ai_interview_credits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    mentor_session_credits: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
