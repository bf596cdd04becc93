# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Shared repository operations for billable sessions."""
from datetime import datetime
from typing import Generic, Iterable, List, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from copilot_hub.models.database.sessions_model import ACTIVE_STATUSES, BillableSessionMixin

SessionModel = TypeVar("SessionModel", bound=BillableSessionMixin)


class BillableSessionRepository(Generic[SessionModel]):
    """Repository for operations every session kind supports."""

    model: Type[SessionModel]

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, session_id: UUID, refresh: bool = False) -> Optional[SessionModel]:
        """Get session by ID, optionally bypassing the identity map."""
        query = select(self.model).where(self.model.id == session_id)
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def claim_billed_seconds(self, session_id: UUID, expected: int, new_value: int) -> bool:
        """Compare-and-set ``billed_seconds``.

        Returns False when another finalize changed the value first, in which case the caller
        must reload and recompute its charge.
        """
        result = await self.db.execute(
            update(self.model)
            .where(self.model.id == session_id, self.model.billed_seconds == expected)
            .values(billed_seconds=new_value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def raise_total_seconds(self, session_id: UUID, value: int) -> None:
        """Max-of update on ``total_session_seconds``."""
        column = self.model.total_session_seconds
        await self.db.execute(
            update(self.model)
            .where(self.model.id == session_id)
            .values(total_session_seconds=case((column < value, value), else_=column))
            .execution_options(synchronize_session=False)
        )

    async def add_usage_seconds(
        self, session_id: UUID, seconds: int, cap: Optional[int] = None
    ) -> Optional[int]:
        """Add heartbeat seconds, never exceeding ``cap``.

        Returns the new total, or None when the cap was already reached.
        """
        column = self.model.total_session_seconds
        stmt = update(self.model).where(self.model.id == session_id)
        if cap is not None:
            stmt = stmt.where(column < cap).values(
                total_session_seconds=case((column + seconds > cap, cap), else_=column + seconds)
            )
        else:
            stmt = stmt.values(total_session_seconds=column + seconds)
        result = await self.db.execute(
            stmt.returning(column).execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def transition_status(
        self, session_id: UUID, new_status: str, from_statuses: Iterable[str]
    ) -> bool:
        """Set the status only if the current one is still in ``from_statuses``."""
        allowed = [getattr(s, "value", s) for s in from_statuses]
        result = await self.db.execute(
            update(self.model)
            .where(self.model.id == session_id, self.model.status.in_(allowed))
            .values(status=new_status)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_expired(self, now: datetime, limit: int = 500) -> List[SessionModel]:
        """Sessions in a non-terminal status whose usage window has closed."""
        result = await self.db.execute(
            select(self.model)
            .where(
                self.model.status.in_([s.value for s in ACTIVE_STATUSES]),
                self.model.expires_at.is_not(None),
                self.model.expires_at <= now,
            )
            .order_by(self.model.expires_at)
            .limit(limit)
        )
        return list(result.scalars().all())
