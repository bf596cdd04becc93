# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Redis pub/sub for session status fanout."""
import logging

import redis.asyncio as redis

from copilot_hub.services.redis.publisher import SessionEventPublisher, status_channel
from copilot_hub.services.redis.subscriber import SessionEventSubscriber

logger = logging.getLogger(__name__)

__all__ = [
    "SessionEventPublisher",
    "SessionEventSubscriber",
    "status_channel",
    "get_redis_client",
    "close_redis_client",
]


async def get_redis_client(redis_url: str) -> redis.Redis:
    """Client with string responses; status payloads are JSON text."""
    client = redis.from_url(redis_url, encoding="utf-8", decode_responses=True)
    logger.info(f"Redis status fanout enabled ({redis_url.rsplit('@', 1)[-1]})")
    return client


async def close_redis_client(client: redis.Redis) -> None:
    await client.aclose()
