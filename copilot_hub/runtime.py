# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Service container built once per application."""
import logging
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis
import socketio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from copilot_hub.deps import Settings
from copilot_hub.middleware.auth import Authenticator
from copilot_hub.realtime.copilot_handlers import CopilotHandlers
from copilot_hub.realtime.meeting_handlers import MeetingHandlers
from copilot_hub.realtime.presence import LiveSessionStore, PresenceRouter
from copilot_hub.realtime.server import RealtimeGateway, create_socket_server
from copilot_hub.services.ai_provider import CompletionClient
from copilot_hub.services.config_cache import AdminConfigCache
from copilot_hub.services.copilot_assistant import CopilotAssistant
from copilot_hub.services.finalizer import SessionFinalizer
from copilot_hub.services.redis import SessionEventPublisher, close_redis_client
from copilot_hub.services.session_lifecycle import SessionLifecycleService
from copilot_hub.services.stream_relay import StreamRelay
from copilot_hub.services.summarizer import SessionSummarizer
from copilot_hub.services.transcript_buffer import TranscriptBuffer
from copilot_hub.workers.expiry_sweep import ExpirySweeper
from copilot_hub.workers.scheduler import RecurringTask

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    config_cache: AdminConfigCache
    completion_client: CompletionClient
    stream_relay: StreamRelay
    summarizer: SessionSummarizer
    finalizer: SessionFinalizer
    lifecycle: SessionLifecycleService
    transcript_buffer: TranscriptBuffer
    store: LiveSessionStore
    sio: socketio.AsyncServer
    router: PresenceRouter
    gateway: RealtimeGateway
    sweeper: ExpirySweeper
    sweep_task: RecurringTask
    redis_client: Optional[redis.Redis] = None
    publisher: Optional[SessionEventPublisher] = None

    def start(self) -> None:
        """Start background work. Safe to call more than once."""
        self.sweep_task.start()

    async def stop(self) -> None:
        await self.sweep_task.stop()
        await self.transcript_buffer.flush_all()
        await self.store.close()
        if self.redis_client is not None:
            await close_redis_client(self.redis_client)
        logger.info("Runtime stopped")


def build_runtime(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    sio: Optional[socketio.AsyncServer] = None,
    redis_client: Optional[redis.Redis] = None,
) -> Runtime:
    """Wire every service from settings and a session factory."""
    publisher = SessionEventPublisher(redis_client) if redis_client is not None else None
    config_cache = AdminConfigCache(session_factory, settings, ttl_seconds=settings.config_cache_ttl_seconds)
    completion_client = CompletionClient(config_cache, timeout=settings.ai_request_timeout)
    stream_relay = StreamRelay(config_cache, completion_client, timeout=settings.ai_request_timeout)
    summarizer = SessionSummarizer(completion_client)
    finalizer = SessionFinalizer(
        session_factory,
        config_cache,
        summarizer=summarizer,
        publisher=publisher,
    )
    transcript_buffer = TranscriptBuffer(session_factory, flush_delay=settings.transcript_flush_seconds)
    store = LiveSessionStore(max_screenshots=settings.max_buffered_screenshots)

    sio = sio or create_socket_server(settings)
    router = PresenceRouter(sio, store)
    copilot = CopilotHandlers(
        router,
        store,
        session_factory,
        CopilotAssistant(session_factory, stream_relay, completion_client),
        finalizer,
        max_devices=settings.max_connected_devices,
        finalize_on_owner_disconnect=settings.finalize_on_owner_disconnect,
        owner_disconnect_grace=settings.owner_disconnect_grace_seconds,
    )
    meeting = MeetingHandlers(router, session_factory, transcript_buffer, finalizer)
    gateway = RealtimeGateway(sio, router, Authenticator(session_factory, settings), copilot, meeting)
    gateway.register()

    sweeper = ExpirySweeper(session_factory, finalizer, publisher=publisher)
    sweep_task = RecurringTask(
        "expiry-sweep", settings.expiry_sweep_interval_seconds, sweeper.sweep_once
    )

    return Runtime(
        settings=settings,
        session_factory=session_factory,
        config_cache=config_cache,
        completion_client=completion_client,
        stream_relay=stream_relay,
        summarizer=summarizer,
        finalizer=finalizer,
        lifecycle=SessionLifecycleService(session_factory, config_cache, finalizer),
        transcript_buffer=transcript_buffer,
        store=store,
        sio=sio,
        router=router,
        gateway=gateway,
        sweeper=sweeper,
        sweep_task=sweep_task,
        redis_client=redis_client,
        publisher=publisher,
    )
