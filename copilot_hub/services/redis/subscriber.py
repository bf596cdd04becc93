# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Redis subscriber for session status updates."""
import json
import logging
from typing import Any, AsyncGenerator, Dict

import redis.asyncio as redis

from copilot_hub.models.database.sessions_model import is_terminal
from copilot_hub.services.redis.publisher import status_channel

logger = logging.getLogger(__name__)


class SessionEventSubscriber:
    """Follows one session's status channel until the session closes."""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def subscribe_to_session(self, session_id: str) -> AsyncGenerator[Dict[str, Any], None]:
        """
        Yield status updates for a session.

        The stream ends after the first terminal status (COMPLETED, EXPIRED, REJECTED, ENDED).
        Payloads that are not JSON objects are skipped.
        """
        channel = status_channel(session_id)
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    update = json.loads(message["data"])
                except (TypeError, ValueError):
                    logger.warning(f"Ignoring malformed status payload on {channel}")
                    continue
                if not isinstance(update, dict):
                    continue
                yield update
                if is_terminal(str(update.get("status", ""))):
                    return
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
