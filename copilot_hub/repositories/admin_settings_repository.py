# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Repository for the administrative settings row."""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from copilot_hub.models import database as db_models


class AdminSettingsRepository:
    """Repository for AdminSettings operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_or_create(self) -> db_models.AdminSettings:
        """Get the settings row, creating it with defaults on first use."""
        result = await self.db.execute(select(db_models.AdminSettings).limit(1))
        settings = result.scalar_one_or_none()
        if settings is None:
            settings = db_models.AdminSettings(id=1)
            self.db.add(settings)
            await self.db.flush()
        return settings

    async def update(self, **kwargs) -> db_models.AdminSettings:
        """Update settings fields; unknown keys are ignored."""
        settings = await self.get_or_create()
        for key, value in kwargs.items():
            if value is not None and hasattr(settings, key):
                setattr(settings, key, value)
        await self.db.flush()
        return settings
