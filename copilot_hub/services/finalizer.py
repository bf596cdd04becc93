# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Session finalization.

Closing a session charges the owner's wallet for the minutes not yet billed. The charge is a delta
against the persisted ``billed_seconds``, which is claimed with a compare-and-set before the wallet
is touched, so racing or repeated finalize calls never charge the same minute twice.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.attributes import set_committed_value

from copilot_hub.errors import InsufficientCreditsError, SessionNotFoundError, SessionStateError
from copilot_hub.models.database import CreditPool, SessionKind, SessionStatus
from copilot_hub.models.database.sessions_model import is_terminal
from copilot_hub.repositories import InterviewRepository, UserRepository, repository_for
from copilot_hub.services.billing import quote_charge
from copilot_hub.services.config_cache import AdminConfigCache
from copilot_hub.utils.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

SHORTFALL_MESSAGES = {
    CreditPool.AI_MINUTES: "Insufficient AI credits for this session",
    CreditPool.MENTOR_MINUTES: "Insufficient mentor credits for additional minutes",
}


@dataclass
class FinalizeResult:
    """Outcome of one finalize call."""

    session_id: str
    kind: str
    status: str
    elapsed_seconds: int
    billable_seconds: int
    billable_minutes: int
    charged_minutes: int
    billed_seconds: int
    credit_charged: bool
    insufficient_credits: bool = False
    already_final: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SessionFinalizer:
    """Runs the finalize protocol for every session kind."""

    MAX_CLAIM_ATTEMPTS = 3

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config_cache: AdminConfigCache,
        summarizer=None,
        publisher=None,
    ):
        self.session_factory = session_factory
        self.config_cache = config_cache
        self.summarizer = summarizer
        self.publisher = publisher

    async def finalize(
        self,
        kind: SessionKind,
        session_id: UUID,
        ended_at: Optional[datetime] = None,
        started_at: Optional[datetime] = None,
        raise_on_shortfall: bool = True,
        summarize: bool = True,
    ) -> FinalizeResult:
        """
        Close a session and charge the unbilled minutes.

        Args:
            kind: Session kind
            session_id: Session to close
            ended_at: End of usage (defaults to now)
            started_at: Start of usage if none was recorded (defaults to the end time)
            raise_on_shortfall: Raise InsufficientCreditsError after persisting when the wallet
                could not cover the charge. Fire-and-forget callers pass False and get a warning log.
            summarize: Generate a recap if the session has none yet

        Returns:
            FinalizeResult describing what was charged

        Raises:
            SessionNotFoundError: unknown session
            InsufficientCreditsError: see ``raise_on_shortfall``
        """
        kind = SessionKind(kind)
        async with self.session_factory() as db:
            result, parent_id, pool = await self._finalize_in(db, kind, session_id, ended_at, started_at)

        if parent_id is not None:
            await self._mark_parent_used(parent_id, result.elapsed_seconds)
        if summarize and self.summarizer is not None:
            await self._summarize(kind, session_id)
        await self._publish(result)

        if result.insufficient_credits:
            message = SHORTFALL_MESSAGES[pool]
            if raise_on_shortfall:
                raise InsufficientCreditsError(message, result)
            logger.warning(f"{message}: {kind.value} {session_id} left unpaid")
        return result

    async def _finalize_in(
        self,
        db: AsyncSession,
        kind: SessionKind,
        session_id: UUID,
        ended_at: Optional[datetime],
        started_at: Optional[datetime],
    ) -> Tuple[FinalizeResult, Optional[UUID], CreditPool]:
        repo = repository_for(kind, db)
        users = UserRepository(db)
        config = await self.config_cache.get_billing_config()

        for attempt in range(self.MAX_CLAIM_ATTEMPTS):
            session = await repo.get_by_id(session_id, refresh=attempt > 0)
            if session is None:
                raise SessionNotFoundError()

            already_final = is_terminal(session.status)
            now = utcnow()
            if not already_final:
                if session.session_started_at is None:
                    session.session_started_at = as_utc(started_at) or as_utc(ended_at) or now
                session.session_ended_at = as_utc(ended_at) or now
            end = session.session_ended_at or now
            start = session.session_started_at or end

            previous = session.billed_seconds or 0
            quote = quote_charge(start, end, session.duration_minutes, previous, config)
            charged_minutes = 0
            shortfall = False

            if quote.new_charge_minutes > 0:
                if not await repo.claim_billed_seconds(session.id, previous, quote.billable_seconds):
                    logger.info(f"billed_seconds of {kind.value} {session_id} moved; retrying finalize")
                    await db.rollback()
                    continue
                balance = await users.conditional_decrement(
                    session.billing_owner_id, session.credit_pool, quote.new_charge_minutes
                )
                if balance is None:
                    # Release the claim so the unpaid minutes stay billable
                    await repo.claim_billed_seconds(session.id, quote.billable_seconds, previous)
                    shortfall = True
                else:
                    charged_minutes = quote.new_charge_minutes
                    session.credit_charged = True
                    set_committed_value(session, "billed_seconds", quote.billable_seconds)
                    logger.info(
                        f"Charged {charged_minutes} min to {session.billing_owner_id} "
                        f"for {kind.value} {session_id} (balance {balance})"
                    )
            elif quote.billable_seconds > previous:
                # Same minute count: record the higher second count without charging
                if await repo.claim_billed_seconds(session.id, previous, quote.billable_seconds):
                    set_committed_value(session, "billed_seconds", quote.billable_seconds)

            if quote.elapsed_seconds > (session.total_session_seconds or 0):
                await repo.raise_total_seconds(session.id, quote.elapsed_seconds)
                set_committed_value(session, "total_session_seconds", quote.elapsed_seconds)

            if not already_final:
                session.status = session.final_status.value
                if kind == SessionKind.COPILOT:
                    session.join_code = None
                    await repo.clear_devices(session.id)

            await db.commit()

            result = FinalizeResult(
                session_id=str(session.id),
                kind=kind.value,
                status=session.status,
                elapsed_seconds=quote.elapsed_seconds,
                billable_seconds=quote.billable_seconds,
                billable_minutes=quote.billable_minutes,
                charged_minutes=charged_minutes,
                billed_seconds=session.billed_seconds or 0,
                credit_charged=bool(session.credit_charged),
                insufficient_credits=shortfall,
                already_final=already_final,
            )
            return result, getattr(session, "interview_id", None), session.credit_pool

        raise SessionStateError("Session is being finalized concurrently; retry")

    async def _mark_parent_used(self, interview_id: UUID, elapsed_seconds: int) -> None:
        """Flag the scheduled interview behind a copilot session as used. Best effort."""
        try:
            async with self.session_factory() as db:
                repo = InterviewRepository(db)
                await repo.transition_status(
                    interview_id,
                    SessionStatus.COMPLETED.value,
                    [s for s in SessionStatus if s != SessionStatus.COMPLETED],
                )
                await repo.raise_total_seconds(interview_id, max(1, elapsed_seconds))
                await db.commit()
        except Exception as e:
            logger.warning(f"Failed to mark linked interview {interview_id} completed: {e}", exc_info=True)

    async def _summarize(self, kind: SessionKind, session_id: UUID) -> None:
        """Attach a recap if none exists yet. Failures never affect billing."""
        try:
            async with self.session_factory() as db:
                session = await repository_for(kind, db).get_by_id(session_id)
                if session is None or session.summary_updated_at is not None:
                    return
                summary = await self.summarizer.summarize_session(db, session)
                if summary is None:
                    return
                session.summary_text = summary.summary_text
                session.summary_data = summary.summary_data
                session.summary_updated_at = utcnow()
                await db.commit()
        except Exception as e:
            logger.warning(f"Failed to summarize {kind.value} {session_id}: {e}", exc_info=True)

    async def _publish(self, result: FinalizeResult) -> None:
        if self.publisher is None:
            return
        try:
            await self.publisher.publish_finalized(
                result.session_id,
                result.kind,
                result.status,
                billable_minutes=result.billable_minutes,
                charged_minutes=result.charged_minutes,
                insufficient_credits=result.insufficient_credits,
            )
        except Exception as e:
            logger.warning(f"Failed to publish finalize of {result.session_id}: {e}")
