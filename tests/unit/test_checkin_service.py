"""Unit tests for CheckInService over in-memory stores."""

from datetime import timedelta
from decimal import Decimal

import pytest

from dedata.models.enums import CheckInStatus
from dedata.services.checkin.service import CheckInService
from dedata.services.checkin.verify_throttle import VerifyThrottle
from dedata.services.payment_gateway import VerificationResult, VerifyOutcome
from dedata.utils.datetime_utils import utc_now
from dedata.utils.exceptions import (
    AlreadyCheckedInError,
    CheckInInProgressError,
    CheckInNotFoundError,
    CheckInOwnershipError,
    GatewayError,
    InvalidCheckInStatusError,
    RateLimitedError,
    UserNotFoundError,
    WalletNotBoundError,
)
from tests.fakes import make_challenge


@pytest.fixture
def service(scope_factory, gateway):
    return CheckInService(
        scope_factory,
        gateway,
        payment_window_minutes=30,
        throttle=VerifyThrottle(max_per_order=100, max_per_user=100),
    )


class TestCheckIn:
    """Tests for check_in."""

    @pytest.mark.asyncio
    async def test_creates_pending_record(self, service, ledger, gateway):
        result = await service.check_in("user-1")

        assert not result.reused
        assert result.checkin.status == CheckInStatus.PENDING_PAYMENT.value
        assert result.checkin.order_id == result.challenge.order_id
        assert result.checkin.price_amount == "1.0"
        assert len(ledger.records) == 1
        assert gateway.requests == ["user-1"]

    @pytest.mark.asyncio
    async def test_unknown_user(self, service, gateway):
        with pytest.raises(UserNotFoundError):
            await service.check_in("nobody")
        assert gateway.requests == []

    @pytest.mark.asyncio
    async def test_wallet_not_bound(self, service, users, gateway):
        users.add("user-2", None)
        users.add("user-3", "0x1234")

        with pytest.raises(WalletNotBoundError):
            await service.check_in("user-2")
        with pytest.raises(WalletNotBoundError):
            await service.check_in("user-3")
        assert gateway.requests == []

    @pytest.mark.asyncio
    async def test_live_challenge_is_returned_again(self, service, ledger, gateway):
        """A second call inside the payment window reuses the pending record."""
        first = await service.check_in("user-1")
        second = await service.check_in("user-1")

        assert second.reused
        assert second.checkin.id == first.checkin.id
        assert second.challenge.order_id == first.challenge.order_id
        assert len(ledger.records) == 1
        assert gateway.requests == ["user-1"]

    @pytest.mark.asyncio
    async def test_expired_challenge_is_superseded(self, service, ledger, gateway):
        gateway.challenges.append(make_challenge("order-old", utc_now() - timedelta(seconds=1)))

        old = await service.check_in("user-1")
        new = await service.check_in("user-1")

        assert new.checkin.id != old.checkin.id
        assert ledger.records[old.checkin.id].status == CheckInStatus.PAYMENT_FAILED.value
        assert ledger.records[old.checkin.id].failure_reason == "Payment challenge expired"
        assert new.checkin.status == CheckInStatus.PENDING_PAYMENT.value

    @pytest.mark.asyncio
    async def test_incomplete_pending_record_is_superseded(self, service, ledger):
        stale = await ledger.create(user_id="user-1", status=CheckInStatus.PENDING_PAYMENT.value)

        result = await service.check_in("user-1")

        assert ledger.records[stale.id].status == CheckInStatus.PAYMENT_FAILED.value
        assert ledger.records[stale.id].failure_reason == "Incomplete payment challenge"
        assert result.checkin.id != stale.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [CheckInStatus.PAYMENT_SUCCESS, CheckInStatus.ISSUING])
    async def test_in_progress_blocks(self, service, ledger, gateway, status):
        await ledger.create(user_id="user-1", status=status.value, order_id="order-paid")

        with pytest.raises(CheckInInProgressError):
            await service.check_in("user-1")
        assert gateway.requests == []

    @pytest.mark.asyncio
    async def test_already_checked_in(self, service, ledger, gateway):
        gateway.already_done = True

        with pytest.raises(AlreadyCheckedInError):
            await service.check_in("user-1")
        assert ledger.records == {}

    @pytest.mark.asyncio
    async def test_missing_expiry_uses_payment_window(self, service, gateway):
        challenge = make_challenge("order-x").model_copy(update={"expires_at": None})
        gateway.challenges.append(challenge)
        before = utc_now()

        result = await service.check_in("user-1")

        expires_at = result.checkin.payment_expires_at
        assert before + timedelta(minutes=29) < expires_at <= utc_now() + timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_reused_order_id_reports_in_progress(self, service, ledger, gateway):
        """A duplicate order id hits the unique rule and is reported as in progress."""
        await ledger.create(user_id="user-9", status=CheckInStatus.SUCCESS.value, order_id="order-1")
        gateway.challenges.append(make_challenge("order-1"))

        with pytest.raises(CheckInInProgressError):
            await service.check_in("user-1")

    @pytest.mark.asyncio
    async def test_gateway_failure_propagates(self, service, ledger, gateway):
        gateway.request_error = GatewayError("Unexpected response from gateway: status 500", 500)

        with pytest.raises(GatewayError):
            await service.check_in("user-1")
        assert ledger.records == {}


class TestVerifyCheckIn:
    """Tests for verify_check_in."""

    @pytest.mark.asyncio
    async def test_success_moves_to_payment_success(self, service, ledger, gateway):
        created = await service.check_in("user-1")
        order_id = created.challenge.order_id

        result = await service.verify_check_in(order_id, "user-1")

        assert result.success
        assert result.outcome is VerifyOutcome.SETTLED
        assert ledger.records[created.checkin.id].status == CheckInStatus.PAYMENT_SUCCESS.value
        assert gateway.settled == [order_id]

    @pytest.mark.asyncio
    async def test_pending_confirmation_keeps_record_pending(self, service, ledger, gateway):
        created = await service.check_in("user-1")
        gateway.verify_results.append(
            VerificationResult(success=False, message="PENDING_CONFIRMATION: waiting for blocks")
        )

        result = await service.verify_check_in(created.challenge.order_id, "user-1")

        assert not result.success
        assert result.outcome is VerifyOutcome.PENDING_CONFIRMATION
        assert ledger.records[created.checkin.id].status == CheckInStatus.PENDING_PAYMENT.value
        assert gateway.settled == []

        # Next poll succeeds
        retry = await service.verify_check_in(created.challenge.order_id, "user-1")
        assert retry.success
        assert ledger.records[created.checkin.id].status == CheckInStatus.PAYMENT_SUCCESS.value

    @pytest.mark.asyncio
    async def test_not_found(self, service):
        with pytest.raises(CheckInNotFoundError):
            await service.verify_check_in("missing", "user-1")

    @pytest.mark.asyncio
    async def test_ownership(self, service, gateway):
        created = await service.check_in("user-1")

        with pytest.raises(CheckInOwnershipError):
            await service.verify_check_in(created.challenge.order_id, "user-2")
        assert gateway.verifies == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status", [CheckInStatus.PAYMENT_SUCCESS, CheckInStatus.ISSUING, CheckInStatus.SUCCESS]
    )
    async def test_already_paid_is_idempotent(self, service, ledger, gateway, status):
        await ledger.create(user_id="user-1", status=status.value, order_id="order-7")

        result = await service.verify_check_in("order-7", "user-1")

        assert result.success
        assert gateway.verifies == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [CheckInStatus.PAYMENT_FAILED, CheckInStatus.ISSUE_FAILED])
    async def test_failed_record_rejected(self, service, ledger, status):
        await ledger.create(user_id="user-1", status=status.value, order_id="order-8")

        with pytest.raises(InvalidCheckInStatusError):
            await service.verify_check_in("order-8", "user-1")

    @pytest.mark.asyncio
    async def test_settle_failure_is_ignored(self, service, ledger, gateway):
        created = await service.check_in("user-1")
        gateway.settle_error = GatewayError("Settle failed: boom", 500)

        result = await service.verify_check_in(created.challenge.order_id, "user-1")

        assert result.success
        assert ledger.records[created.checkin.id].status == CheckInStatus.PAYMENT_SUCCESS.value

    @pytest.mark.asyncio
    async def test_throttled(self, scope_factory, gateway):
        service = CheckInService(
            scope_factory, gateway, throttle=VerifyThrottle(max_per_order=1, max_per_user=10)
        )
        created = await service.check_in("user-1")
        gateway.verify_results.append(VerificationResult(success=False, message="NO_TRANSACTION"))

        await service.verify_check_in(created.challenge.order_id, "user-1")
        with pytest.raises(RateLimitedError):
            await service.verify_check_in(created.challenge.order_id, "user-1")
        assert len(gateway.verifies) == 1


class TestHistoryAndSummary:
    """Tests for list_check_ins and get_summary."""

    @pytest.mark.asyncio
    async def test_pagination(self, service, ledger):
        for i in range(5):
            await ledger.create(user_id="user-1", status=CheckInStatus.PAYMENT_FAILED.value, order_id=f"o-{i}")

        items, total = await service.list_check_ins("user-1", page=2, page_size=2)

        assert total == 5
        assert [c.order_id for c in items] == ["o-2", "o-1"]

    @pytest.mark.asyncio
    async def test_page_arguments_are_clamped(self, service, ledger):
        await ledger.create(user_id="user-1", status=CheckInStatus.PAYMENT_FAILED.value, order_id="o-1")

        items, total = await service.list_check_ins("user-1", page=0, page_size=0)

        assert total == 1
        assert len(items) == 1

    @pytest.mark.asyncio
    async def test_summary(self, service, ledger, users):
        now = utc_now()
        await ledger.create(
            user_id="user-1",
            status=CheckInStatus.SUCCESS.value,
            order_id="o-1",
            token_amount=Decimal("10"),
            issued_at=now,
        )
        await users.credit_checkin_reward("user-1", Decimal("10"), now)

        summary = await service.get_summary("user-1")

        assert summary.checked_in_today
        assert summary.total_checkins == 1
        assert summary.total_rewards == Decimal("10")
        assert summary.last_checkin_at == now
        assert [s.token_amount for s in summary.daily_stats] == [Decimal("10")]

    @pytest.mark.asyncio
    async def test_summary_without_check_ins(self, service):
        summary = await service.get_summary("user-1")

        assert not summary.checked_in_today
        assert summary.total_checkins == 0
        assert summary.daily_stats == []

    @pytest.mark.asyncio
    async def test_summary_unknown_user(self, service):
        with pytest.raises(UserNotFoundError):
            await service.get_summary("nobody")
