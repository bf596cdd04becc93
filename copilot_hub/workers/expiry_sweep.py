# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Expiry sweep for scheduled sessions.

Meetings and interviews that nobody closed are resolved once their ``expires_at`` has passed:
sessions with any evidence of use are finalized as COMPLETED (which bills them), the rest become
EXPIRED without touching the wallet.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from copilot_hub.models.database import ACTIVE_STATUSES, SessionKind, SessionStatus
from copilot_hub.repositories import repository_for
from copilot_hub.services.finalizer import SessionFinalizer
from copilot_hub.utils.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

SWEPT_KINDS = (SessionKind.MEETING, SessionKind.INTERVIEW)


@dataclass
class SweepReport:
    completed: List[str] = field(default_factory=list)
    expired: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.completed) + len(self.expired) + len(self.failed)


class ExpirySweeper:
    """Resolves abandoned scheduled sessions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        finalizer: SessionFinalizer,
        publisher=None,
        batch_size: int = 500,
    ):
        self.session_factory = session_factory
        self.finalizer = finalizer
        self.publisher = publisher
        self.batch_size = batch_size

    async def sweep_once(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Run one pass over every swept session kind.

        A failure on one session is logged and recorded in the report; the pass continues.
        """
        now = as_utc(now) or utcnow()
        report = SweepReport()
        for kind in SWEPT_KINDS:
            async with self.session_factory() as db:
                candidates = await repository_for(kind, db).list_expired(now, self.batch_size)
                targets: List[Tuple] = [
                    (
                        s.id,
                        s.has_usage_evidence(),
                        s.session_ended_at,
                        s.expires_at,
                        getattr(s, "host_joined_at", None),
                    )
                    for s in candidates
                ]

            for session_id, used, ended_at, expires_at, joined_at in targets:
                try:
                    if used:
                        await self._complete(kind, session_id, now, ended_at, expires_at, joined_at)
                        report.completed.append(str(session_id))
                    elif await self._expire(kind, session_id):
                        report.expired.append(str(session_id))
                except Exception as e:
                    report.failed.append(str(session_id))
                    logger.error(f"Expiry sweep failed for {kind.value} {session_id}: {e}", exc_info=True)

        if report.total:
            logger.info(
                f"Expiry sweep: {len(report.completed)} completed, {len(report.expired)} expired, "
                f"{len(report.failed)} failed"
            )
        return report

    async def _complete(
        self,
        kind: SessionKind,
        session_id,
        now: datetime,
        ended_at: Optional[datetime],
        expires_at: Optional[datetime],
        joined_at: Optional[datetime] = None,
    ) -> None:
        end = as_utc(ended_at)
        if end is None:
            expires_at = as_utc(expires_at)
            end = min(now, expires_at) if expires_at else now
        await self.finalizer.finalize(
            kind,
            session_id,
            ended_at=end,
            started_at=joined_at,
            raise_on_shortfall=False,
            summarize=False,
        )

    async def _expire(self, kind: SessionKind, session_id) -> bool:
        async with self.session_factory() as db:
            changed = await repository_for(kind, db).transition_status(
                session_id, SessionStatus.EXPIRED.value, ACTIVE_STATUSES
            )
            await db.commit()
        if changed and self.publisher is not None:
            try:
                await self.publisher.publish_swept(str(session_id), kind.value, SessionStatus.EXPIRED.value)
            except Exception as e:
                logger.warning(f"Failed to publish expiry of {session_id}: {e}")
        return changed
