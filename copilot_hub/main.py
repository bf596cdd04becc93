# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""FastAPI main application module."""
import logging
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from copilot_hub.database import close_db, get_session_maker, init_db
from copilot_hub.deps import get_settings
from copilot_hub.errors import CopilotHubError
from copilot_hub.models.api import ErrorResponse
from copilot_hub.realtime.server import create_socket_server
from copilot_hub.routers import (
    admin_config,
    copilot_sessions,
    health,
    interviews,
    meetings,
    session_events,
)
from copilot_hub.runtime import build_runtime
from copilot_hub.services.redis import get_redis_client

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("copilot_hub")

# Socket.IO handlers are registered on this server when the runtime is built
sio = create_socket_server(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    # Startup
    await init_db()

    redis_client = await get_redis_client(settings.redis_url) if settings.enable_redis else None
    runtime = build_runtime(settings, get_session_maker(), sio=sio, redis_client=redis_client)
    app.state.runtime = runtime
    runtime.start()
    logger.info("Copilot Hub started")

    yield
    # Shutdown
    await runtime.stop()
    await close_db()


# Rate limiter
limiter = Limiter(key_func=get_remote_address)

app = FastAPI(
    title=settings.api_title,
    description="Live interview and meeting assistance: sessions, billing and realtime copilot rooms",
    version=settings.api_version,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(CopilotHubError)
async def copilot_hub_error_handler(request: Request, exc: CopilotHubError) -> JSONResponse:
    body = ErrorResponse.from_error(exc)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(copilot_sessions.router)
app.include_router(interviews.router)
app.include_router(meetings.router)
app.include_router(admin_config.router)
app.include_router(session_events.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Copilot Hub API",
        "version": settings.api_version,
        "docs": "/api/docs",
    }


# Serve Socket.IO and the REST API from one ASGI application
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("copilot_hub.main:asgi_app", host="0.0.0.0", port=8000, reload=True)
