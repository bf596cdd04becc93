# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Short-lived cache over administrative settings."""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from copilot_hub.deps import Settings
from copilot_hub.repositories import AdminSettingsRepository
from copilot_hub.services.billing import BillingConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderCredentials:
    api_key: str
    model: str
    base_url: str


@dataclass(frozen=True)
class AdminConfig:
    """Immutable snapshot of the settings row merged with environment fallbacks."""

    default_ai_provider: str
    openai: ProviderCredentials
    deepseek: ProviderCredentials
    gemini: ProviderCredentials
    billing: BillingConfig

    def provider(self, name: str) -> Optional[ProviderCredentials]:
        return getattr(self, name, None) if name in ("openai", "deepseek", "gemini") else None


class AdminConfigCache:
    """Caches the admin settings snapshot for ``ttl_seconds``.

    Administrative updates call ``invalidate()`` so the next read goes to the database.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        ttl_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.settings = settings
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: Optional[AdminConfig] = None
        self._loaded_at = 0.0
        self._lock = asyncio.Lock()

    def invalidate(self) -> None:
        self._value = None
        self._loaded_at = 0.0

    def _is_fresh(self) -> bool:
        return self._value is not None and (self._clock() - self._loaded_at) < self.ttl_seconds

    async def get(self) -> AdminConfig:
        """Return the cached snapshot, reloading it when stale."""
        if self._is_fresh():
            return self._value
        async with self._lock:
            if self._is_fresh():
                return self._value
            self._value = await self._load()
            self._loaded_at = self._clock()
            return self._value

    async def get_billing_config(self) -> BillingConfig:
        return (await self.get()).billing

    async def _load(self) -> AdminConfig:
        async with self.session_factory() as db:
            row = await AdminSettingsRepository(db).get_or_create()
            await db.commit()

        env = self.settings
        config = AdminConfig(
            default_ai_provider=(row.default_ai_provider or env.default_ai_provider or "openai").lower(),
            openai=ProviderCredentials(
                api_key=row.openai_api_key or env.openai_api_key,
                model=row.openai_model or env.openai_model,
                base_url=env.openai_base_url,
            ),
            deepseek=ProviderCredentials(
                api_key=row.deepseek_api_key or env.deepseek_api_key,
                model=row.deepseek_model or env.deepseek_model,
                base_url=env.deepseek_base_url,
            ),
            gemini=ProviderCredentials(
                api_key=row.gemini_api_key or env.gemini_api_key,
                model=row.gemini_model or env.gemini_model,
                base_url=env.gemini_base_url,
            ),
            billing=BillingConfig.from_settings(
                row.session_grace_minutes, row.session_hard_stop_enabled
            ),
        )
        logger.debug(
            f"Admin config loaded: provider={config.default_ai_provider} "
            f"grace={config.billing.grace_seconds}s hard_stop={config.billing.hard_stop_enabled}"
        )
        return config
