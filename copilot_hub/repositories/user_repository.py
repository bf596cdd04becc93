# SPDX-FileCopyrightText: Copyright (c) 2024-2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Repository for User and wallet operations."""
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from copilot_hub.models import database as db_models
from copilot_hub.models.database import CreditPool


class UserRepository:
    """Repository for User operations.

    Wallet mutations are single conditional UPDATE statements so that two concurrent charges can
    never both pass a balance check that only one of them can afford.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        email: str,
        name: Optional[str] = None,
        role: str = "user",
        ai_interview_credits: int = 0,
        mentor_session_credits: int = 0,
        is_active: bool = True,
    ) -> db_models.User:
        """Create a new user."""
        user = db_models.User(
            email=email,
            name=name,
            role=role,
            is_active=is_active,
            ai_interview_credits=ai_interview_credits,
            mentor_session_credits=mentor_session_credits,
        )
        self.db.add(user)
        await self.db.flush()
        return user

    async def get_by_id(self, user_id: UUID) -> Optional[db_models.User]:
        """Get user by ID."""
        result = await self.db.execute(select(db_models.User).where(db_models.User.id == user_id))
        return result.scalar_one_or_none()

    async def get_balance(self, user_id: UUID, pool: CreditPool) -> Optional[int]:
        column = getattr(db_models.User, pool.value)
        result = await self.db.execute(select(column).where(db_models.User.id == user_id))
        return result.scalar_one_or_none()

    async def conditional_decrement(self, user_id: UUID, pool: CreditPool, amount: int) -> Optional[int]:
        """
        Take ``amount`` credits from a pool if the balance covers it.

        Args:
            user_id: Wallet owner
            pool: Credit pool to charge
            amount: Positive number of credits

        Returns:
            The new balance, or None when the balance was insufficient (or the user is missing)
        """
        if amount <= 0:
            raise ValueError("amount must be positive")
        column = getattr(db_models.User, pool.value)
        result = await self.db.execute(
            update(db_models.User)
            .where(db_models.User.id == user_id, column >= amount)
            .values({column: column - amount})
            .returning(column)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def increment(self, user_id: UUID, pool: CreditPool, amount: int) -> Optional[int]:
        """Add credits to a pool. Returns the new balance, or None if the user is missing."""
        if amount <= 0:
            raise ValueError("amount must be positive")
        column = getattr(db_models.User, pool.value)
        result = await self.db.execute(
            update(db_models.User)
            .where(db_models.User.id == user_id)
            .values({column: column + amount})
            .returning(column)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()
