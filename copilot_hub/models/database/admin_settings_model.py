# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Administrative settings (single row)."""
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from copilot_hub.database import Base


class AdminSettings(Base):
    """Provider selection, provider credentials and billing policy."""

    __tablename__ = "admin_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    default_ai_provider: Mapped[str] = mapped_column(String(32), default="openai", nullable=False)
    openai_api_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    openai_model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    deepseek_api_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    deepseek_model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    gemini_api_key: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    gemini_model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    session_grace_minutes: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    session_hard_stop_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
