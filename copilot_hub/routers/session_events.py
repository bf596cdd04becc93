# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Server-Sent Events stream of session status changes."""
import json
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from copilot_hub.deps import get_runtime
from copilot_hub.middleware.auth import get_current_active_user
from copilot_hub.models import database as db_models
from copilot_hub.services.redis import SessionEventSubscriber

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/sessions", tags=["session-events"])


@router.get("/{session_id}/events")
async def stream_session_status(
    session_id: str,
    current_user: db_models.User = Depends(get_current_active_user),
    runtime=Depends(get_runtime),
):
    """
    Stream status updates for a session via Server-Sent Events using Redis pub/sub.

    Args:
        session_id: Session identifier (meeting, interview or copilot session)

    Returns:
        SSE stream that ends after a terminal status
    """
    if runtime.redis_client is None:
        raise HTTPException(status_code=503, detail="Status streaming requires Redis")

    async def event_generator():
        try:
            subscriber = SessionEventSubscriber(runtime.redis_client)
            yield f"data: {json.dumps({'type': 'connected', 'session_id': session_id})}\n\n"

            async for update in subscriber.subscribe_to_session(session_id):
                yield f"data: {json.dumps(update)}\n\n"

        except Exception as e:
            logger.error(f"Error streaming session status: {e}", exc_info=True)
            yield f"data: {json.dumps({'type': 'error', 'error': str(e)})}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
