# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Session start, usage heartbeats and status changes."""
import logging
import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.attributes import set_committed_value

from copilot_hub.errors import (
    ForbiddenError,
    SessionNotFoundError,
    SessionStateError,
    SessionValidationError,
)
from copilot_hub.models import database as db_models
from copilot_hub.models.database import SessionKind, SessionStatus
from copilot_hub.models.database.sessions_model import TERMINAL_STATUSES, can_transition, is_terminal
from copilot_hub.repositories import CopilotSessionRepository, InterviewRepository, repository_for
from copilot_hub.services.config_cache import AdminConfigCache
from copilot_hub.services.finalizer import FinalizeResult, SessionFinalizer
from copilot_hub.utils.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

EARLY_START_WINDOW = timedelta(minutes=10)
_PRE_START_STATUSES = (SessionStatus.SCHEDULED, SessionStatus.PENDING, SessionStatus.APPROVED)


def generate_join_code() -> str:
    """Six uppercase hex characters."""
    return secrets.token_hex(3).upper()


def owner_id_of(session) -> UUID:
    return session.host_id if isinstance(session, db_models.Meeting) else session.owner_id


def can_access(session, user: db_models.User) -> bool:
    """Owner/host, the bound attendee, or an admin."""
    if user.is_admin or owner_id_of(session) == user.id:
        return True
    attendee_id = getattr(session, "attendee_id", None)
    return attendee_id is not None and attendee_id == user.id


def require_owner(session, user: db_models.User) -> None:
    if not (user.is_admin or owner_id_of(session) == user.id):
        raise ForbiddenError()


@dataclass
class UsageResult:
    total_session_seconds: int
    status: str


class SessionLifecycleService:
    """Operations that move a session towards IN_PROGRESS or record its usage."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config_cache: AdminConfigCache,
        finalizer: Optional[SessionFinalizer] = None,
    ):
        self.session_factory = session_factory
        self.config_cache = config_cache
        self.finalizer = finalizer

    async def start_copilot(self, session_id: UUID, user: db_models.User) -> db_models.CopilotSession:
        """Open a copilot session for devices: issue a join code and mark it in progress."""
        async with self.session_factory() as db:
            session = await CopilotSessionRepository(db).get_by_id(session_id)
            if session is None:
                raise SessionNotFoundError()
            require_owner(session, user)
            if is_terminal(session.status):
                raise SessionStateError("Session already ended")

            if not session.join_code:
                session.join_code = generate_join_code()
            session.status = SessionStatus.IN_PROGRESS.value
            if session.session_started_at is None:
                session.session_started_at = utcnow()
            session.session_ended_at = None
            await db.commit()

        if session.interview_id is not None:
            await self._mark_interview_in_progress(session.interview_id)
        logger.info(f"Copilot session {session_id} started by {user.id}")
        return session

    async def _mark_interview_in_progress(self, interview_id: UUID) -> None:
        try:
            async with self.session_factory() as db:
                repo = InterviewRepository(db)
                await repo.transition_status(
                    interview_id, SessionStatus.IN_PROGRESS.value, _PRE_START_STATUSES
                )
                await repo.raise_total_seconds(interview_id, 1)
                await db.commit()
        except Exception as e:
            logger.warning(f"Failed to mark interview {interview_id} in progress: {e}", exc_info=True)

    async def start_interview(
        self, interview_id: UUID, user: db_models.User, now: Optional[datetime] = None
    ) -> db_models.Interview:
        """
        Start a scheduled interview.

        An overdue interview is reconciled on the spot: COMPLETED if it was used, EXPIRED if not.

        Raises:
            SessionStateError: completed, expired, too early, or duration already spent
        """
        now = as_utc(now) or utcnow()
        async with self.session_factory() as db:
            interview = await InterviewRepository(db).get_by_id(interview_id)
            if interview is None:
                raise SessionNotFoundError("Interview not found")
            require_owner(interview, user)

            expires_at = as_utc(interview.expires_at)
            overdue = expires_at is not None and now > expires_at and not is_terminal(interview.status)
            used = interview.has_usage_evidence()
            if overdue and not used:
                interview.status = SessionStatus.EXPIRED.value
                await db.commit()
                raise SessionStateError("Interview expired")

            if not overdue:
                self._check_startable(interview, now)
                interview.status = SessionStatus.IN_PROGRESS.value
                if interview.session_started_at is None:
                    interview.session_started_at = now
                interview.session_ended_at = None
                await db.commit()
                return interview

        # Used but never closed: settle it the way the expiry sweep would
        await self.finalizer.finalize(
            SessionKind.INTERVIEW,
            interview_id,
            ended_at=expires_at,
            raise_on_shortfall=False,
            summarize=False,
        )
        raise SessionStateError("Interview already completed")

    @staticmethod
    def _check_startable(interview: db_models.Interview, now: datetime) -> None:
        scheduled_at = as_utc(interview.scheduled_at)
        if scheduled_at and now < scheduled_at - EARLY_START_WINDOW:
            raise SessionStateError("Can only start within 10 minutes of the scheduled time")
        if interview.status == SessionStatus.COMPLETED.value:
            raise SessionStateError("Interview already completed")
        if interview.status == SessionStatus.EXPIRED.value:
            raise SessionStateError("Interview expired")
        duration_seconds = max(0, interview.duration_minutes or 0) * 60
        if duration_seconds > 0 and (interview.total_session_seconds or 0) >= duration_seconds:
            raise SessionStateError("Interview duration already spent")

    async def record_usage(
        self,
        kind: SessionKind,
        session_id: UUID,
        user: db_models.User,
        seconds: Optional[float],
        started_at: Optional[datetime] = None,
    ) -> UsageResult:
        """
        Add heartbeat seconds to a scheduled session.

        With hard stop enabled the total never exceeds the scheduled duration.

        Raises:
            SessionValidationError: non-positive seconds, or duration already fulfilled
        """
        if seconds is None or seconds <= 0:
            raise SessionValidationError("seconds must be a positive number")
        delta = int(math.floor(seconds))

        config = await self.config_cache.get_billing_config()
        async with self.session_factory() as db:
            repo = repository_for(kind, db)
            session = await repo.get_by_id(session_id)
            if session is None:
                raise SessionNotFoundError()
            if not can_access(session, user):
                raise ForbiddenError()
            if is_terminal(session.status):
                raise SessionStateError("Session already closed")

            if session.session_started_at is None:
                session.session_started_at = as_utc(started_at) or utcnow()

            duration_seconds = max(0, session.duration_minutes or 0) * 60
            cap = duration_seconds if config.hard_stop_enabled and duration_seconds > 0 else None
            total = session.total_session_seconds or 0
            if delta > 0:
                new_total = await repo.add_usage_seconds(session.id, delta, cap)
                if new_total is None:
                    raise SessionValidationError("Session duration already fulfilled")
                total = new_total
                set_committed_value(session, "total_session_seconds", total)

            if session.status in {s.value for s in _PRE_START_STATUSES}:
                session.status = SessionStatus.IN_PROGRESS.value
            await db.commit()
            return UsageResult(total_session_seconds=total, status=session.status)

    async def update_status(
        self, kind: SessionKind, session_id: UUID, user: db_models.User, new_status: str
    ) -> str:
        """
        Owner-driven status change; forward-only unless the caller is an admin.

        Closing an open session (COMPLETED or ENDED) runs the finalize protocol, so it is billed
        like any other close. EXPIRED means "never used" and is refused for a used session
        unless the caller is an admin.

        Raises:
            SessionStateError: backwards move, or EXPIRED on a used session
            InsufficientCreditsError: the session was closed but the wallet could not cover it
        """
        try:
            target = SessionStatus(str(new_status).upper())
        except ValueError:
            raise SessionValidationError("Invalid status")

        async with self.session_factory() as db:
            repo = repository_for(kind, db)
            session = await repo.get_by_id(session_id)
            if session is None:
                raise SessionNotFoundError()
            require_owner(session, user)
            if not can_transition(session.status, target.value, admin_override=user.is_admin):
                raise SessionStateError(f"Cannot move from {session.status} to {target.value}")

            closing = target in TERMINAL_STATUSES and not is_terminal(session.status)
            expiring = closing and target == SessionStatus.EXPIRED
            if expiring and session.has_usage_evidence() and not user.is_admin:
                raise SessionStateError("Session was used; end it instead of expiring it")
            if not closing or expiring:
                session.status = target.value
                await db.commit()
                return session.status

        result = await self.finalizer.finalize(kind, session_id, raise_on_shortfall=True)
        logger.info(f"{kind.value} {session_id} closed by {user.id} via status update")
        return result.status

    async def finalize(
        self,
        kind: SessionKind,
        session_id: UUID,
        user: db_models.User,
        started_at: Optional[datetime] = None,
        ended_at: Optional[datetime] = None,
        owner_only: bool = False,
    ) -> FinalizeResult:
        """
        Close a session on behalf of a caller.

        Raises:
            ForbiddenError: caller may not close the session
            InsufficientCreditsError: the session was closed but the wallet could not cover it
        """
        async with self.session_factory() as db:
            session = await repository_for(kind, db).get_by_id(session_id)
            if session is None:
                raise SessionNotFoundError()
            if owner_only:
                require_owner(session, user)
            elif not can_access(session, user):
                raise ForbiddenError()
        return await self.finalizer.finalize(
            kind, session_id, ended_at=ended_at, started_at=started_at, raise_on_shortfall=True
        )
