"""Integration tests for the SQL ledger on SQLite."""

from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError

from dedata.models import CheckInStatus
from dedata.repositories.checkin_repository import CheckInRepository
from dedata.repositories.ledger import sql_ledger_scope
from dedata.repositories.user_repository import UserRepository
from dedata.utils.datetime_utils import utc_now
from dedata.utils.exceptions import InvalidTransitionError


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


class TestCheckInRepository:
    """Tests for CheckInRepository."""

    @pytest.mark.asyncio
    async def test_transition_is_compare_and_set(self, session):
        repo = CheckInRepository(session)
        checkin = await repo.create(user_id="user-1", status=CheckInStatus.PAYMENT_SUCCESS.value)
        await session.commit()

        claimed = await repo.transition(
            checkin.id, [CheckInStatus.PAYMENT_SUCCESS], CheckInStatus.ISSUING
        )
        # A second writer expecting the old status loses
        lost = await repo.transition(
            checkin.id, [CheckInStatus.PAYMENT_SUCCESS], CheckInStatus.ISSUING
        )
        await session.commit()

        assert claimed is True
        assert lost is False
        record = await repo.get_by_id(checkin.id)
        assert record.status == CheckInStatus.ISSUING.value

    @pytest.mark.asyncio
    async def test_transition_sets_fields_and_increments_retry(self, session):
        repo = CheckInRepository(session)
        checkin = await repo.create(user_id="user-1", status=CheckInStatus.ISSUING.value)
        await session.commit()

        moved = await repo.transition(
            checkin.id,
            [CheckInStatus.ISSUING],
            CheckInStatus.PAYMENT_SUCCESS,
            increment_retry=True,
            failure_reason="rpc down",
            issue_tx_hash=None,
        )
        await session.commit()

        record = await repo.get_by_id(checkin.id)
        assert moved
        assert record.status == CheckInStatus.PAYMENT_SUCCESS.value
        assert record.retry_count == 1
        assert record.failure_reason == "rpc down"

    @pytest.mark.asyncio
    async def test_transition_rejects_unknown_edge_and_field(self, session):
        repo = CheckInRepository(session)
        checkin = await repo.create(user_id="user-1", status=CheckInStatus.PENDING_PAYMENT.value)

        with pytest.raises(InvalidTransitionError):
            await repo.transition(checkin.id, [CheckInStatus.PENDING_PAYMENT], CheckInStatus.SUCCESS)
        with pytest.raises(ValueError):
            await repo.transition(
                checkin.id,
                [CheckInStatus.PENDING_PAYMENT],
                CheckInStatus.PAYMENT_FAILED,
                user_id="someone-else",
            )

    @pytest.mark.asyncio
    async def test_one_active_check_in_per_user(self, session):
        repo = CheckInRepository(session)
        await repo.create(user_id="user-1", status=CheckInStatus.PENDING_PAYMENT.value, order_id="o-1")
        await session.commit()

        with pytest.raises(IntegrityError):
            await repo.create(user_id="user-1", status=CheckInStatus.PENDING_PAYMENT.value, order_id="o-2")
        await session.rollback()

        # Terminal records do not count
        await repo.create(user_id="user-1", status=CheckInStatus.PAYMENT_FAILED.value, order_id="o-3")
        await session.commit()

    @pytest.mark.asyncio
    async def test_order_id_is_unique(self, session):
        repo = CheckInRepository(session)
        await repo.create(user_id="user-1", status=CheckInStatus.SUCCESS.value, order_id="o-1")
        await session.commit()

        with pytest.raises(IntegrityError):
            await repo.create(user_id="user-2", status=CheckInStatus.SUCCESS.value, order_id="o-1")

    @pytest.mark.asyncio
    async def test_lookups(self, session):
        repo = CheckInRepository(session)
        old = await repo.create(user_id="user-1", status=CheckInStatus.PAYMENT_FAILED.value, order_id="o-1")
        live = await repo.create(user_id="user-1", status=CheckInStatus.ISSUING.value, order_id="o-2")
        await session.commit()

        assert (await repo.get_by_order_id("o-1")).id == old.id
        assert await repo.get_by_order_id("missing") is None
        latest = await repo.find_latest_by_user_and_status(
            "user-1", [CheckInStatus.PAYMENT_SUCCESS, CheckInStatus.ISSUING]
        )
        assert latest.id == live.id
        assert [c.id for c in await repo.find_by_status(CheckInStatus.ISSUING)] == [live.id]

    @pytest.mark.asyncio
    async def test_history_paging(self, session):
        repo = CheckInRepository(session)
        start = utc_now()
        for i in range(5):
            await repo.create(
                user_id="user-1",
                status=CheckInStatus.PAYMENT_FAILED.value,
                order_id=f"o-{i}",
                created_at=start + timedelta(seconds=i),
            )
        await session.commit()

        items, total = await repo.find_by_user("user-1", limit=2, offset=2)

        assert total == 5
        assert [c.order_id for c in items] == ["o-2", "o-1"]

    @pytest.mark.asyncio
    async def test_success_queries(self, session):
        repo = CheckInRepository(session)
        now = utc_now()
        for i, issued_at in enumerate([now, now, now - timedelta(days=2), now - timedelta(days=40)]):
            await repo.create(
                user_id="user-1",
                status=CheckInStatus.SUCCESS.value,
                order_id=f"o-{i}",
                token_amount=Decimal("10"),
                issued_at=issued_at,
            )
        await session.commit()

        assert await repo.count_success_by_user("user-1") == 4
        assert await repo.has_success_since("user-1", now - timedelta(hours=1))
        assert not await repo.has_success_since("user-2", now - timedelta(hours=1))

        stats = await repo.daily_stats("user-1", now - timedelta(days=30))
        assert [amount for _, amount in stats] == [Decimal("10"), Decimal("20")]
        assert stats[-1][0] == now.date()

    @pytest.mark.asyncio
    async def test_mark_success_only_once(self, session):
        repo = CheckInRepository(session)
        checkin = await repo.create(user_id="user-1", status=CheckInStatus.ISSUING.value)
        await session.commit()

        first = await repo.mark_success(checkin.id, "0xabc", Decimal("10"), utc_now())
        second = await repo.mark_success(checkin.id, "0xabc", Decimal("10"), utc_now())
        await session.commit()

        assert first is True
        assert second is False


class TestUserRepository:
    """Tests for the atomic reward credit."""

    @pytest.mark.asyncio
    async def test_credit_accumulates(self, session):
        repo = UserRepository(session)
        now = utc_now()

        assert await repo.credit_checkin_reward("user-1", Decimal("10"), now)
        assert await repo.credit_checkin_reward("user-1", Decimal("10"), now)
        await session.commit()

        user = await repo.get_by_id("user-1")
        assert user.total_rewards == Decimal("20")
        assert user.last_checkin_at is not None

    @pytest.mark.asyncio
    async def test_credit_unknown_user(self, session):
        assert not await UserRepository(session).credit_checkin_reward("nobody", Decimal("1"), utc_now())


class TestLedgerScope:
    """Tests for sql_ledger_scope."""

    @pytest.mark.asyncio
    async def test_commit_is_visible_to_next_scope(self, session_factory):
        scope = sql_ledger_scope(session_factory)

        async with scope() as ledger:
            checkin = await ledger.checkins.create(
                user_id="user-1", status=CheckInStatus.PENDING_PAYMENT.value, order_id="o-1"
            )
            await ledger.commit()

        async with scope() as ledger:
            assert (await ledger.checkins.get_by_id(checkin.id)).order_id == "o-1"

    @pytest.mark.asyncio
    async def test_error_rolls_back(self, session_factory):
        scope = sql_ledger_scope(session_factory)

        with pytest.raises(RuntimeError):
            async with scope() as ledger:
                await ledger.checkins.create(
                    user_id="user-1", status=CheckInStatus.PENDING_PAYMENT.value, order_id="o-1"
                )
                raise RuntimeError("boom")

        async with scope() as ledger:
            assert await ledger.checkins.get_by_order_id("o-1") is None
