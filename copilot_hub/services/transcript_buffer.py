# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Batches meeting transcript fragments into timed writes."""
import asyncio
import logging
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from copilot_hub.models.database import SessionStatus
from copilot_hub.repositories import MeetingRepository

logger = logging.getLogger(__name__)


class TranscriptBuffer:
    """
    Per-meeting fragment buffer.

    The first fragment arms a flush timer; later fragments ride along until it fires. A flush
    appends the newline-joined fragments to the stored transcript in a single UPDATE.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], flush_delay: float = 2.0):
        self.session_factory = session_factory
        self.flush_delay = flush_delay
        self._fragments: Dict[UUID, List[str]] = {}
        self._timers: Dict[UUID, asyncio.Task] = {}

    def append(self, meeting_id: UUID, text: str) -> None:
        """Buffer one fragment and arm the flush timer if none is pending."""
        if not text:
            return
        self._fragments.setdefault(meeting_id, []).append(text)
        if meeting_id not in self._timers:
            self._timers[meeting_id] = asyncio.create_task(self._flush_later(meeting_id))

    def pending(self, meeting_id: UUID) -> List[str]:
        return list(self._fragments.get(meeting_id, []))

    async def _flush_later(self, meeting_id: UUID) -> None:
        try:
            await asyncio.sleep(self.flush_delay)
        except asyncio.CancelledError:
            return
        self._timers.pop(meeting_id, None)
        try:
            await self.flush(meeting_id)
        except Exception as e:
            logger.error(f"Scheduled transcript flush failed for meeting {meeting_id}: {e}", exc_info=True)

    async def flush(self, meeting_id: UUID, force_status: Optional[str] = None) -> bool:
        """
        Write buffered fragments for a meeting.

        Args:
            meeting_id: Meeting to flush
            force_status: Status set in the same statement, used when the meeting ends

        Returns:
            True if anything was written

        Raises:
            Exception: persistence failures; the fragments are put back for the next flush
        """
        timer = self._timers.pop(meeting_id, None)
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

        fragments = self._fragments.pop(meeting_id, [])
        if not fragments and not force_status:
            return False

        try:
            async with self.session_factory() as db:
                repo = MeetingRepository(db)
                if fragments:
                    await repo.append_transcript(meeting_id, "\n".join(fragments), force_status)
                else:
                    others = [s.value for s in SessionStatus if s.value != force_status]
                    await repo.transition_status(meeting_id, force_status, others)
                await db.commit()
        except Exception:
            # Keep arrival order ahead of anything buffered during the failed write
            self._fragments[meeting_id] = fragments + self._fragments.get(meeting_id, [])
            raise

        if fragments:
            logger.debug(f"Flushed {len(fragments)} transcript fragments for meeting {meeting_id}")
        return bool(fragments)

    async def flush_all(self) -> None:
        """Flush every meeting with buffered fragments; used on shutdown."""
        for meeting_id in list(self._fragments):
            try:
                await self.flush(meeting_id)
            except Exception as e:
                logger.error(f"Transcript flush failed for meeting {meeting_id}: {e}", exc_info=True)
        for timer in list(self._timers.values()):
            timer.cancel()
        self._timers.clear()

