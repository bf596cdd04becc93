# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Repository for Copilot session operations."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, desc, func, or_, select, update

from copilot_hub.models import database as db_models
from copilot_hub.models.database.sessions_model import SessionStatus
from copilot_hub.repositories.session_repository import BillableSessionRepository
from copilot_hub.utils.timeutils import utcnow


class CopilotSessionRepository(BillableSessionRepository[db_models.CopilotSession]):
    """Repository for CopilotSession and its transcript, topics, answers and devices."""

    model = db_models.CopilotSession

    async def create(
        self,
        owner_id: UUID,
        title: str,
        scenario_type: str = "OTHER",
        target_url: Optional[str] = None,
        interview_id: Optional[UUID] = None,
        duration_minutes: int = 0,
        session_metadata: Optional[dict] = None,
    ) -> db_models.CopilotSession:
        """Create a new copilot session in DRAFT."""
        session = db_models.CopilotSession(
            owner_id=owner_id,
            title=title,
            scenario_type=scenario_type,
            target_url=target_url,
            interview_id=interview_id,
            duration_minutes=duration_minutes,
            status=SessionStatus.DRAFT.value,
            session_metadata=session_metadata or {},
        )
        self.db.add(session)
        await self.db.flush()
        return session

    async def list_by_owner(self, owner_id: UUID) -> List[db_models.CopilotSession]:
        """List a user's sessions, most recently updated first."""
        result = await self.db.execute(
            select(db_models.CopilotSession)
            .where(db_models.CopilotSession.owner_id == owner_id)
            .order_by(desc(db_models.CopilotSession.updated_at))
        )
        return list(result.scalars().all())

    async def bind_attendee(self, session_id: UUID, user_id: UUID) -> bool:
        """Record the first non-owner identity; False if another identity holds the slot."""
        model = db_models.CopilotSession
        result = await self.db.execute(
            update(model)
            .where(
                model.id == session_id,
                or_(model.attendee_id.is_(None), model.attendee_id == user_id),
            )
            .values(attendee_id=user_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # Append-only records

    async def append_transcript(
        self, session_id: UUID, text: str, source: str, ts: Optional[datetime] = None
    ) -> db_models.CopilotTranscriptEntry:
        entry = db_models.CopilotTranscriptEntry(
            session_id=session_id, text=text, source=source, ts=ts or utcnow()
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def append_topic(
        self, session_id: UUID, text: str, ts: Optional[datetime] = None
    ) -> db_models.CopilotTopic:
        topic = db_models.CopilotTopic(session_id=session_id, text=text, ts=ts or utcnow())
        self.db.add(topic)
        await self.db.flush()
        return topic

    async def append_ai_message(
        self,
        session_id: UUID,
        request_type: str,
        provider: str,
        question: str,
        answer: str,
        ts: Optional[datetime] = None,
    ) -> db_models.CopilotAiMessage:
        message = db_models.CopilotAiMessage(
            session_id=session_id,
            request_type=request_type,
            provider=provider,
            question=question,
            answer=answer,
            ts=ts or utcnow(),
        )
        self.db.add(message)
        await self.db.flush()
        return message

    async def list_transcript(self, session_id: UUID) -> List[db_models.CopilotTranscriptEntry]:
        result = await self.db.execute(
            select(db_models.CopilotTranscriptEntry)
            .where(db_models.CopilotTranscriptEntry.session_id == session_id)
            .order_by(db_models.CopilotTranscriptEntry.id)
        )
        return list(result.scalars().all())

    async def list_topics(self, session_id: UUID) -> List[db_models.CopilotTopic]:
        result = await self.db.execute(
            select(db_models.CopilotTopic)
            .where(db_models.CopilotTopic.session_id == session_id)
            .order_by(db_models.CopilotTopic.id)
        )
        return list(result.scalars().all())

    async def list_ai_messages(self, session_id: UUID) -> List[db_models.CopilotAiMessage]:
        result = await self.db.execute(
            select(db_models.CopilotAiMessage)
            .where(db_models.CopilotAiMessage.session_id == session_id)
            .order_by(db_models.CopilotAiMessage.id)
        )
        return list(result.scalars().all())

    # Connected devices

    async def replace_device(
        self, session_id: UUID, connection_id: str, device_type: str, cap: int = 20
    ) -> int:
        """
        Record a connection in the device list.

        Any earlier entry for the same connection is replaced, then only the ``cap`` most recent
        entries are kept.

        Returns:
            Number of devices after the update
        """
        device = db_models.ConnectedDevice
        await self.db.execute(
            delete(device).where(
                device.session_id == session_id, device.connection_id == connection_id
            )
        )
        self.db.add(
            device(
                session_id=session_id,
                connection_id=connection_id,
                device_type=device_type,
                last_seen_at=utcnow(),
            )
        )
        await self.db.flush()

        stale = await self.db.execute(
            select(device.id)
            .where(device.session_id == session_id)
            .order_by(desc(device.last_seen_at), desc(device.id))
            .offset(cap)
        )
        stale_ids = list(stale.scalars().all())
        if stale_ids:
            await self.db.execute(delete(device).where(device.id.in_(stale_ids)))
        return await self.count_devices(session_id)

    async def remove_device(self, session_id: UUID, connection_id: str) -> int:
        """Pull a connection from the device list and return the remaining count."""
        device = db_models.ConnectedDevice
        await self.db.execute(
            delete(device).where(
                device.session_id == session_id, device.connection_id == connection_id
            )
        )
        return await self.count_devices(session_id)

    async def clear_devices(self, session_id: UUID) -> None:
        await self.db.execute(
            delete(db_models.ConnectedDevice).where(
                db_models.ConnectedDevice.session_id == session_id
            )
        )

    async def list_devices(self, session_id: UUID) -> List[db_models.ConnectedDevice]:
        result = await self.db.execute(
            select(db_models.ConnectedDevice)
            .where(db_models.ConnectedDevice.session_id == session_id)
            .order_by(db_models.ConnectedDevice.last_seen_at, db_models.ConnectedDevice.id)
        )
        return list(result.scalars().all())

    async def count_devices(self, session_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(db_models.ConnectedDevice.id)).where(
                db_models.ConnectedDevice.session_id == session_id
            )
        )
        return result.scalar_one() or 0

    async def delete(self, session_id: UUID) -> bool:
        """Delete a session."""
        session = await self.get_by_id(session_id)
        if session:
            await self.db.delete(session)
            return True
        return False
