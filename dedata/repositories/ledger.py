"""
Ledger interfaces and the unit-of-work scope.

The orchestrator and the settlement worker depend only on these
protocols. ``sql_ledger_scope`` is the production implementation; tests
provide in-memory doubles.
"""

from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dedata.models.checkin import CheckIn
from dedata.models.enums import CheckInStatus
from dedata.models.user import User
from dedata.repositories.checkin_repository import CheckInRepository
from dedata.repositories.user_repository import UserRepository


class CheckInLedger(Protocol):
    """Persisted check-in records."""

    async def create(self, **data: Any) -> CheckIn: ...

    async def get_by_id(self, id: str) -> CheckIn | None: ...

    async def get_by_order_id(self, order_id: str) -> CheckIn | None: ...

    async def find_latest_by_user_and_status(
        self, user_id: str, statuses: Iterable[CheckInStatus]
    ) -> CheckIn | None: ...

    async def find_by_status(
        self, status: CheckInStatus, limit: int | None = None
    ) -> list[CheckIn]: ...

    async def find_by_user(
        self, user_id: str, limit: int, offset: int = 0
    ) -> tuple[list[CheckIn], int]: ...

    async def has_success_since(self, user_id: str, since: datetime) -> bool: ...

    async def count_success_by_user(self, user_id: str) -> int: ...

    async def daily_stats(
        self, user_id: str, since: datetime
    ) -> list[tuple[date, Decimal]]: ...

    async def transition(
        self,
        checkin_id: str,
        expected: Iterable[CheckInStatus],
        target: CheckInStatus,
        increment_retry: bool = False,
        **fields: Any,
    ) -> bool: ...

    async def mark_success(
        self,
        checkin_id: str,
        tx_hash: str,
        token_amount: Decimal,
        issued_at: datetime,
    ) -> bool: ...


class UserAccountStore(Protocol):
    """User accounts owned by the login service."""

    async def get_by_id(self, id: str) -> User | None: ...

    async def credit_checkin_reward(
        self, user_id: str, amount: Decimal, checked_in_at: datetime
    ) -> bool: ...


@dataclass
class LedgerScope:
    """Repositories sharing one transaction."""

    checkins: CheckInLedger
    users: UserAccountStore
    session: Any = None

    async def commit(self) -> None:
        """Commit the transaction."""
        if self.session is not None:
            await self.session.commit()

    async def rollback(self) -> None:
        """Roll back the transaction."""
        if self.session is not None:
            await self.session.rollback()


LedgerScopeFactory = Callable[[], AbstractAsyncContextManager[LedgerScope]]


def sql_ledger_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> LedgerScopeFactory:
    """
    Build a scope factory backed by SQLAlchemy sessions.

    Uncommitted work is rolled back when the scope exits with an error.

    Args:
        session_factory: Session factory from the composition root

    Returns:
        Callable returning an async context manager of LedgerScope
    """

    @asynccontextmanager
    async def scope() -> AsyncIterator[LedgerScope]:
        async with session_factory() as session:
            ledger = LedgerScope(
                checkins=CheckInRepository(session),
                users=UserRepository(session),
                session=session,
            )
            try:
                yield ledger
            except BaseException:
                await session.rollback()
                raise

    return scope
