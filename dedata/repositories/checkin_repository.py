"""
Check-in repository.

Data access layer for CheckIn model. Status changes go through
``transition``: a single conditional UPDATE keyed on the expected
current status, so a concurrent writer that already moved the record
makes the call a no-op instead of overwriting its work.
"""

from collections.abc import Iterable
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dedata.models.checkin import CheckIn
from dedata.models.enums import CheckInStatus, validate_transition
from dedata.repositories.base import BaseRepository
from dedata.utils.datetime_utils import utc_now

# Columns a transition may set
TRANSITION_FIELDS = frozenset(
    {
        "issue_tx_hash",
        "failure_reason",
        "token_amount",
        "issued_at",
        "payment_tx_hash",
    }
)


class CheckInRepository(BaseRepository[CheckIn]):
    """Repository for CheckIn entity."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize check-in repository."""
        super().__init__(CheckIn, session)

    async def get_by_order_id(self, order_id: str) -> CheckIn | None:
        """
        Get check-in by gateway order id.

        Args:
            order_id: Gateway order id

        Returns:
            CheckIn or None
        """
        return await self.get_by(order_id=order_id)

    async def find_latest_by_user_and_status(
        self, user_id: str, statuses: Iterable[CheckInStatus]
    ) -> CheckIn | None:
        """
        Get the newest check-in of a user in one of the statuses.

        Args:
            user_id: User ID
            statuses: Statuses to match

        Returns:
            Newest matching CheckIn or None
        """
        stmt = (
            select(CheckIn)
            .where(
                CheckIn.user_id == user_id,
                CheckIn.status.in_([s.value for s in statuses]),
            )
            .order_by(CheckIn.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_status(
        self, status: CheckInStatus, limit: int | None = None
    ) -> list[CheckIn]:
        """
        Get check-ins in a status, oldest first.

        Args:
            status: Status to match
            limit: Max number of results

        Returns:
            List of CheckIn
        """
        stmt = (
            select(CheckIn)
            .where(CheckIn.status == status.value)
            .order_by(CheckIn.created_at.asc())
            .execution_options(populate_existing=True)
        )
        if limit:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_by_user(
        self, user_id: str, limit: int, offset: int = 0
    ) -> tuple[list[CheckIn], int]:
        """
        Get a user's check-in history, newest first.

        Args:
            user_id: User ID
            limit: Page size
            offset: Rows to skip

        Returns:
            Tuple of (items, total_count)
        """
        total = await self.count(user_id=user_id)

        stmt = (
            select(CheckIn)
            .where(CheckIn.user_id == user_id)
            .order_by(CheckIn.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def has_success_since(self, user_id: str, since: datetime) -> bool:
        """
        Check for a completed check-in issued at or after a moment.

        Args:
            user_id: User ID
            since: Lower bound (aware)

        Returns:
            True if one exists
        """
        stmt = (
            select(func.count())
            .select_from(CheckIn)
            .where(
                CheckIn.user_id == user_id,
                CheckIn.status == CheckInStatus.SUCCESS.value,
                CheckIn.issued_at >= since,
            )
        )
        result = await self.session.execute(stmt)
        return (result.scalar() or 0) > 0

    async def count_success_by_user(self, user_id: str) -> int:
        """Count completed check-ins of a user."""
        return await self.count(user_id=user_id, status=CheckInStatus.SUCCESS.value)

    async def daily_stats(
        self, user_id: str, since: datetime
    ) -> list[tuple[date, Decimal]]:
        """
        Sum delivered reward tokens per issue day.

        Args:
            user_id: User ID
            since: Only check-ins issued at or after this moment

        Returns:
            List of (day, token_amount) ordered by day
        """
        day = func.date(CheckIn.issued_at).label("day")
        stmt = (
            select(day, func.sum(CheckIn.token_amount).label("token_amount"))
            .where(
                and_(
                    CheckIn.user_id == user_id,
                    CheckIn.status == CheckInStatus.SUCCESS.value,
                    CheckIn.issued_at >= since,
                )
            )
            .group_by(day)
            .order_by(day)
        )
        result = await self.session.execute(stmt)

        stats: list[tuple[date, Decimal]] = []
        for row_day, amount in result.all():
            # SQLite returns DATE() as text
            if isinstance(row_day, str):
                row_day = date.fromisoformat(row_day)
            stats.append((row_day, Decimal(str(amount or 0))))
        return stats

    async def transition(
        self,
        checkin_id: str,
        expected: Iterable[CheckInStatus],
        target: CheckInStatus,
        increment_retry: bool = False,
        **fields: Any,
    ) -> bool:
        """
        Move a check-in to a new status if it is still in an expected one.

        Args:
            checkin_id: CheckIn ID
            expected: Statuses the record must currently have
            target: New status
            increment_retry: Add one to retry_count in the same statement
            **fields: Additional columns to set

        Returns:
            True if the record was updated

        Raises:
            InvalidTransitionError: Transition not in the state machine
            ValueError: Unknown field
        """
        sources = validate_transition(expected, target)

        unknown = set(fields) - TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Fields not settable by transition: {sorted(unknown)}")

        values: dict[str, Any] = {
            "status": target.value,
            "updated_at": utc_now(),
            **fields,
        }
        if increment_retry:
            values["retry_count"] = CheckIn.retry_count + 1

        stmt = (
            update(CheckIn)
            .where(
                CheckIn.id == checkin_id,
                CheckIn.status.in_([s.value for s in sources]),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def mark_success(
        self,
        checkin_id: str,
        tx_hash: str,
        token_amount: Decimal,
        issued_at: datetime,
    ) -> bool:
        """
        Finalize an issuing check-in.

        Args:
            checkin_id: CheckIn ID
            tx_hash: Confirmed issuance transaction hash
            token_amount: Delivered reward tokens
            issued_at: Confirmation time

        Returns:
            True if this call moved the record to success
        """
        return await self.transition(
            checkin_id,
            [CheckInStatus.ISSUING],
            CheckInStatus.SUCCESS,
            issue_tx_hash=tx_hash,
            token_amount=token_amount,
            issued_at=issued_at,
            failure_reason=None,
        )
