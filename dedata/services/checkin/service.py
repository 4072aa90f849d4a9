"""
Check-in service.

Request path of the daily check-in: issues payment challenges, verifies
payments and reports history. Token issuance happens asynchronously in
the settlement worker.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal

from loguru import logger
from sqlalchemy.exc import IntegrityError

from dedata.config.constants import (
    DAILY_STATS_DAYS,
    DEFAULT_PAGE_SIZE,
    DEFAULT_PAYMENT_WINDOW_MINUTES,
    MAX_PAGE_SIZE,
)
from dedata.models.checkin import CheckIn
from dedata.models.enums import CheckInStatus
from dedata.repositories.ledger import LedgerScope, LedgerScopeFactory
from dedata.services.checkin.state_machine import (
    challenge_from_record,
    missing_payment_fields,
    payment_fields_from_challenge,
)
from dedata.services.checkin.verify_throttle import VerifyThrottle
from dedata.services.payment_gateway.client import PaymentGateway
from dedata.services.payment_gateway.models import PaymentChallenge, VerifyOutcome
from dedata.utils.datetime_utils import days_ago, start_of_day, utc_now
from dedata.utils.exceptions import (
    AlreadyCheckedInError,
    CheckInInProgressError,
    CheckInNotFoundError,
    CheckInOwnershipError,
    GatewayError,
    InvalidCheckInStatusError,
    UserNotFoundError,
    WalletNotBoundError,
)
from dedata.utils.validation import is_valid_address

PAID_STATUSES = (
    CheckInStatus.PAYMENT_SUCCESS,
    CheckInStatus.ISSUING,
    CheckInStatus.SUCCESS,
)

IN_PROGRESS_STATUSES = (CheckInStatus.PAYMENT_SUCCESS, CheckInStatus.ISSUING)


@dataclass
class CheckInResult:
    """A pending check-in and the challenge the user must pay."""

    checkin: CheckIn
    challenge: PaymentChallenge
    reused: bool = False


@dataclass
class VerifyResult:
    """Answer of a verify call."""

    success: bool
    message: str
    outcome: VerifyOutcome


@dataclass
class DailyStat:
    """Reward tokens delivered on one day."""

    day: date
    token_amount: Decimal


@dataclass
class CheckInSummary:
    """User's check-in overview."""

    checked_in_today: bool
    total_rewards: Decimal
    total_checkins: int
    last_checkin_at: datetime | None
    daily_stats: list[DailyStat] = field(default_factory=list)


class CheckInService:
    """
    Check-in orchestrator.

    Enforces one active pipeline per user: an unexpired pending challenge
    is returned again, an expired one is superseded, a paid check-in that
    is still settling blocks new requests.
    """

    def __init__(
        self,
        ledger_scope: LedgerScopeFactory,
        gateway: PaymentGateway,
        payment_window_minutes: int = DEFAULT_PAYMENT_WINDOW_MINUTES,
        throttle: VerifyThrottle | None = None,
    ) -> None:
        """
        Initialize check-in service.

        Args:
            ledger_scope: Factory of ledger transaction scopes
            gateway: Payment gateway client
            payment_window_minutes: Expiry used when the challenge has none
            throttle: Verify rate limiter
        """
        self._scope = ledger_scope
        self.gateway = gateway
        self.payment_window = timedelta(minutes=payment_window_minutes)
        self.throttle = throttle or VerifyThrottle()

    async def check_in(self, user_id: str) -> CheckInResult:
        """
        Start (or resume) today's check-in.

        Args:
            user_id: User ID

        Returns:
            CheckInResult with the challenge to pay

        Raises:
            UserNotFoundError: Unknown user
            WalletNotBoundError: User has no usable reward wallet
            CheckInInProgressError: A paid check-in is still settling
            AlreadyCheckedInError: Gateway reports today's check-in done
            GatewayError: Gateway failure
        """
        async with self._scope() as ledger:
            user = await ledger.users.get_by_id(user_id)
            if user is None:
                raise UserNotFoundError(f"User {user_id} not found")
            if not is_valid_address(user.wallet_address):
                raise WalletNotBoundError("No reward wallet bound to this account")

            now = utc_now()
            reused = await self._resume_or_expire_pending(ledger, user_id, now)
            if reused is not None:
                return reused

            in_progress = await ledger.checkins.find_latest_by_user_and_status(
                user_id, IN_PROGRESS_STATUSES
            )
            if in_progress is not None:
                logger.info(
                    f"User {user_id} has check-in {in_progress.id} in {in_progress.status}"
                )
                raise CheckInInProgressError("You have a check-in in progress, please wait")

            response = await self.gateway.request_check_in(user_id)
            if response.already_done or response.challenge is None:
                raise AlreadyCheckedInError("Already checked in today")

            challenge = response.challenge
            if challenge.expires_at is None:
                challenge = challenge.model_copy(update={"expires_at": now + self.payment_window})

            try:
                checkin = await ledger.checkins.create(
                    user_id=user_id,
                    status=CheckInStatus.PENDING_PAYMENT.value,
                    payment_expires_at=challenge.expires_at,
                    **payment_fields_from_challenge(challenge),
                )
                await ledger.commit()
            except IntegrityError as e:
                # Concurrent request for the same user or a reused order id
                await ledger.rollback()
                logger.warning(f"Check-in insert for user {user_id} rejected: {e.orig}")
                raise CheckInInProgressError("You have a check-in in progress, please wait") from e

            logger.info(
                f"Check-in payment challenge created: user {user_id}, "
                f"check-in {checkin.id}, order {challenge.order_id}"
            )
            return CheckInResult(checkin=checkin, challenge=challenge)

    async def _resume_or_expire_pending(
        self, ledger: LedgerScope, user_id: str, now: datetime
    ) -> CheckInResult | None:
        """Return the live pending check-in, or supersede an expired one."""
        pending = await ledger.checkins.find_latest_by_user_and_status(
            user_id, [CheckInStatus.PENDING_PAYMENT]
        )
        if pending is None:
            return None

        complete = not missing_payment_fields(pending)
        if complete and pending.payment_expires_at is not None and not pending.is_payment_expired(now):
            logger.info(f"Returning live payment challenge {pending.order_id} for user {user_id}")
            return CheckInResult(
                checkin=pending, challenge=challenge_from_record(pending), reused=True
            )

        reason = "Payment challenge expired" if complete else "Incomplete payment challenge"
        moved = await ledger.checkins.transition(
            pending.id,
            [CheckInStatus.PENDING_PAYMENT],
            CheckInStatus.PAYMENT_FAILED,
            failure_reason=reason,
        )
        await ledger.commit()
        if moved:
            logger.info(f"Check-in {pending.id} superseded: {reason}")
        return None

    async def verify_check_in(self, order_id: str, user_id: str) -> VerifyResult:
        """
        Verify payment of a pending check-in.

        Args:
            order_id: Gateway order id
            user_id: User ID (must own the order)

        Returns:
            VerifyResult

        Raises:
            CheckInNotFoundError: Unknown order
            CheckInOwnershipError: Order belongs to another user
            InvalidCheckInStatusError: Check-in is no longer payable
            RateLimitedError: Verify rate limit reached
            GatewayError: Gateway failure
        """
        async with self._scope() as ledger:
            checkin = await ledger.checkins.get_by_order_id(order_id)
            if checkin is None:
                raise CheckInNotFoundError(f"Check-in not found for order {order_id}")
            if checkin.user_id != user_id:
                raise CheckInOwnershipError("Check-in does not belong to user")

            status = checkin.status_enum
            if status in PAID_STATUSES:
                return VerifyResult(True, "payment verified", VerifyOutcome.SETTLED)
            if status is not CheckInStatus.PENDING_PAYMENT:
                raise InvalidCheckInStatusError(f"Invalid check-in status: {status.value}")

            self.throttle.acquire(order_id, user_id)
            result = await self.gateway.verify_payment(order_id, user_id)

            if not result.success:
                logger.info(
                    f"Payment for order {order_id} not verified: {result.outcome.value} "
                    f"({result.message})"
                )
                return VerifyResult(False, result.message, result.outcome)

            moved = await ledger.checkins.transition(
                checkin.id, [CheckInStatus.PENDING_PAYMENT], CheckInStatus.PAYMENT_SUCCESS
            )
            await ledger.commit()

            if not moved:
                current = await ledger.checkins.get_by_id(checkin.id)
                current_status = current.status_enum if current else None
                if current_status not in PAID_STATUSES:
                    logger.error(
                        f"Order {order_id} paid but check-in {checkin.id} is {current_status}"
                    )
                    raise InvalidCheckInStatusError(
                        f"Invalid check-in status: {current_status.value if current_status else 'missing'}"
                    )

            logger.info(f"Payment verified for order {order_id}, user {user_id}")

        await self._settle(order_id)
        return VerifyResult(True, result.message or "payment verified", VerifyOutcome.SETTLED)

    async def _settle(self, order_id: str) -> None:
        """Best-effort settlement; the verified payment stands either way."""
        try:
            await self.gateway.settle(order_id)
        except GatewayError as e:
            logger.warning(f"Settle for order {order_id} failed, ignoring: {e}")

    async def list_check_ins(
        self, user_id: str, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE
    ) -> tuple[list[CheckIn], int]:
        """
        Page through a user's check-ins, newest first.

        Args:
            user_id: User ID
            page: Page number (1-indexed)
            page_size: Items per page

        Returns:
            Tuple of (items, total_count)
        """
        page = max(page, 1)
        page_size = min(max(page_size, 1), MAX_PAGE_SIZE)

        async with self._scope() as ledger:
            return await ledger.checkins.find_by_user(
                user_id, limit=page_size, offset=(page - 1) * page_size
            )

    async def get_summary(self, user_id: str) -> CheckInSummary:
        """
        Build the user's check-in overview.

        Args:
            user_id: User ID

        Returns:
            CheckInSummary

        Raises:
            UserNotFoundError: Unknown user
        """
        async with self._scope() as ledger:
            user = await ledger.users.get_by_id(user_id)
            if user is None:
                raise UserNotFoundError(f"User {user_id} not found")

            now = utc_now()
            checked_in_today = await ledger.checkins.has_success_since(user_id, start_of_day(now))
            total_checkins = await ledger.checkins.count_success_by_user(user_id)
            stats = await ledger.checkins.daily_stats(user_id, days_ago(now, DAILY_STATS_DAYS))

            return CheckInSummary(
                checked_in_today=checked_in_today,
                total_rewards=user.total_rewards,
                total_checkins=total_checkins,
                last_checkin_at=user.last_checkin_at,
                daily_stats=[DailyStat(day=day, token_amount=amount) for day, amount in stats],
            )
