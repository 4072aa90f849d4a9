"""
User repository.

Read access to accounts and the atomic reward credit.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from dedata.models.user import User
from dedata.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for User entity."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize user repository."""
        super().__init__(User, session)

    async def credit_checkin_reward(
        self, user_id: str, amount: Decimal, checked_in_at: datetime
    ) -> bool:
        """
        Add reward tokens to the user's cumulative balance.

        Single UPDATE with an increment expression, never read-modify-write.

        Args:
            user_id: User ID
            amount: Reward tokens
            checked_in_at: Check-in completion time

        Returns:
            True if the user row was updated
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                total_rewards=User.total_rewards + amount,
                last_checkin_at=checked_in_at,
            )
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0
