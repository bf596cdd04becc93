# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Bearer token verification for REST routes and socket connections.

Tokens are issued elsewhere; this module only checks them and loads the user they name.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import parse_qs
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from copilot_hub.database import get_db
from copilot_hub.deps import Settings, get_settings
from copilot_hub.models import database as db_models
from copilot_hub.repositories import UserRepository

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

USER_ID_CLAIMS = ("userId", "id", "sub")


class TokenError(Exception):
    """Token missing, malformed, expired or naming no active user."""


def create_access_token(
    user_id: UUID, settings: Settings, expires_delta: Optional[timedelta] = None
) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=12))
    to_encode = {"sub": str(user_id), "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> UUID:
    """
    Verify a token and return the user id it carries.

    Raises:
        TokenError: bad signature, expired, or no usable user id claim
    """
    try:
        payload: Dict[str, Any] = jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
    except JWTError as e:
        raise TokenError("invalid token") from e

    for claim in USER_ID_CLAIMS:
        value = payload.get(claim)
        if value:
            try:
                return UUID(str(value))
            except ValueError:
                break
    raise TokenError("invalid token")


def extract_socket_token(auth: Optional[Dict[str, Any]], environ: Dict[str, Any]) -> Optional[str]:
    """Token from the Socket.IO auth payload, the query string, or an Authorization header."""
    if isinstance(auth, dict) and auth.get("token"):
        return str(auth["token"])

    values = parse_qs(environ.get("QUERY_STRING", "")).get("token")
    if values and values[0]:
        return values[0]

    header = environ.get("HTTP_AUTHORIZATION", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


class Authenticator:
    """Resolves a token to an active user; shared by the socket gateway."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], settings: Settings):
        self.session_factory = session_factory
        self.settings = settings

    async def authenticate(self, token: Optional[str]) -> db_models.User:
        """
        Raises:
            TokenError: message is the reason reported to the client
        """
        if not token:
            raise TokenError("missing token")
        user_id = decode_token(token, self.settings)
        async with self.session_factory() as db:
            user = await UserRepository(db).get_by_id(user_id)
        if user is None:
            raise TokenError("invalid token")
        if not user.is_active:
            raise TokenError("user inactive")
        return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> db_models.User:
    """Load the user named by the bearer token."""
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized
    try:
        user_id = decode_token(credentials.credentials, get_settings())
    except TokenError:
        raise unauthorized

    user = await UserRepository(db).get_by_id(user_id)
    if user is None:
        raise unauthorized
    return user


async def get_current_active_user(
    current_user: db_models.User = Depends(get_current_user),
) -> db_models.User:
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user")
    return current_user


async def require_admin(
    current_user: db_models.User = Depends(get_current_active_user),
) -> db_models.User:
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user
