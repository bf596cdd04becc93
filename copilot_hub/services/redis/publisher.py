# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Redis publisher for session status updates."""
import json
from typing import Any, Optional

import redis.asyncio as redis

STATUS_CHANNEL = "session:status:{session_id}"


def status_channel(session_id: str) -> str:
    return STATUS_CHANNEL.format(session_id=session_id)


class SessionEventPublisher:
    """Publishes session lifecycle updates via Redis pub/sub."""

    def __init__(self, redis_client: redis.Redis):
        """
        Initialize Redis publisher.

        Args:
            redis_client: Redis async client
        """
        self.redis = redis_client

    async def publish_status_update(
        self, session_id: str, kind: str, status: str, **kwargs: Any
    ) -> int:
        """
        Publish a session status update to its channel.

        Args:
            session_id: Session identifier
            kind: Session kind (meeting, interview, copilot)
            status: New session status
            **kwargs: Additional data to publish

        Returns:
            Number of subscribers that received the message
        """
        message = {"session_id": session_id, "kind": kind, "status": status, **kwargs}
        return await self.redis.publish(status_channel(session_id), json.dumps(message, default=str))

    async def publish_finalized(
        self,
        session_id: str,
        kind: str,
        status: str,
        billable_minutes: int,
        charged_minutes: int,
        insufficient_credits: bool = False,
    ) -> int:
        """Publish the outcome of a finalize."""
        return await self.publish_status_update(
            session_id,
            kind,
            status,
            event="finalized",
            billable_minutes=billable_minutes,
            charged_minutes=charged_minutes,
            insufficient_credits=insufficient_credits,
        )

    async def publish_swept(self, session_id: str, kind: str, status: str, reason: Optional[str] = None) -> int:
        """Publish a status decided by the expiry sweep."""
        return await self.publish_status_update(session_id, kind, status, event="swept", reason=reason)
