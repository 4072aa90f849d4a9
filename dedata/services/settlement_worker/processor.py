"""
Settlement processor.

One pass over paid check-ins: issues reward tokens, re-checks previously
submitted transactions and finalizes confirmed ones. Each record is
handled in its own ledger scope and every state change is committed
before the next external call, so a crash at any point leaves a record
that the next pass can resume.
"""

from decimal import Decimal
from enum import StrEnum
from typing import Any, Protocol

from loguru import logger

from dedata.config.constants import MAX_FAILURE_REASON_LENGTH
from dedata.models.checkin import CheckIn
from dedata.models.enums import WORKER_STATUSES, CheckInStatus
from dedata.repositories.ledger import LedgerScope, LedgerScopeFactory
from dedata.services.blockchain.token_issuer import TransactionStatus
from dedata.utils.datetime_utils import utc_now
from dedata.utils.exceptions import (
    ChainClientError,
    ChainSubmissionError,
    TransactionTimeoutError,
    is_retryable,
    is_terminal,
)
from dedata.utils.security import mask_address, mask_tx_hash


class RewardIssuer(Protocol):
    """Token issuer operations used by the processor."""

    async def issue(self, to_address: str, amount: Decimal | int | str) -> str: ...

    async def check_status(self, tx_hash: str) -> TransactionStatus: ...


class SettlementOutcome(StrEnum):
    """Result of processing one record."""

    SUCCEEDED = "succeeded"
    PENDING = "pending"
    RETRIED = "retried"
    FAILED = "failed"
    SKIPPED = "skipped"


def _reason(text: str) -> str:
    return text[:MAX_FAILURE_REASON_LENGTH]


class SettlementProcessor:
    """
    Drives paid check-ins to ``success`` or ``issue_failed``.

    A record that already carries an issuance hash is re-checked before
    anything is resubmitted:

    - confirmed success: finalized and the user is credited
    - failed on chain or unknown to the node: hash cleared, resubmitted
    - pending: left in ``issuing`` for the next pass
    - found without receipt: counted as a failed attempt, never resubmitted

    A hash kept on a ``payment_success`` record comes from a send error
    whose attempt was already counted, so clearing it costs no retry.
    Only a confirmed hash overrides the retry ceiling; a record at the
    ceiling whose hash is still pending goes to ``issue_failed`` with
    the hash kept.
    """

    def __init__(
        self,
        ledger_scope: LedgerScopeFactory,
        issuer: RewardIssuer,
        reward_amount: Decimal | int | str,
        max_retry_count: int,
    ) -> None:
        """
        Initialize settlement processor.

        Args:
            ledger_scope: Factory of ledger transaction scopes
            issuer: Token issuer
            reward_amount: Whole tokens paid per check-in
            max_retry_count: Failed attempts before giving up
        """
        self._scope = ledger_scope
        self.issuer = issuer
        self.reward_amount = Decimal(str(reward_amount))
        self.max_retry_count = max_retry_count

    async def process_batch(self) -> dict[str, int]:
        """
        Process every paid and in-flight check-in once.

        A failure on one record is logged and the pass moves on.

        Returns:
            Dict with processed, succeeded, pending, retried, failed,
            skipped and errors counts
        """
        async with self._scope() as ledger:
            checkin_ids = [
                checkin.id
                for status in WORKER_STATUSES
                for checkin in await ledger.checkins.find_by_status(status)
            ]

        stats = {"processed": 0, "errors": 0, **{outcome.value: 0 for outcome in SettlementOutcome}}
        if not checkin_ids:
            return stats

        logger.info(f"Settlement pass: {len(checkin_ids)} check-in(s) to process")

        for checkin_id in checkin_ids:
            stats["processed"] += 1
            try:
                outcome = await self.process_one(checkin_id)
            except Exception as e:
                logger.exception(f"Failed to process check-in {checkin_id}: {e}")
                stats["errors"] += 1
                continue
            stats[outcome.value] += 1

        logger.info(
            f"Settlement pass complete: {stats['processed']} processed, "
            f"{stats['succeeded']} succeeded, {stats['pending']} pending, "
            f"{stats['retried']} retried, {stats['failed']} failed, "
            f"{stats['errors']} errors"
        )
        return stats

    async def process_one(self, checkin_id: str) -> SettlementOutcome:
        """
        Process a single check-in.

        Args:
            checkin_id: CheckIn ID

        Returns:
            SettlementOutcome

        Raises:
            ChainClientError: Status lookup of an existing hash failed
        """
        async with self._scope() as ledger:
            checkin = await ledger.checkins.get_by_id(checkin_id)
            if checkin is None or checkin.status_enum not in WORKER_STATUSES:
                return SettlementOutcome.SKIPPED

            if checkin.issue_tx_hash:
                outcome = await self._recheck(ledger, checkin)
                if outcome is not SettlementOutcome.RETRIED:
                    return outcome
                checkin = await ledger.checkins.get_by_id(checkin_id)
                if checkin is None:
                    return SettlementOutcome.SKIPPED

            if checkin.retry_count >= self.max_retry_count:
                logger.warning(
                    f"Check-in {checkin.id}: max retry count reached "
                    f"({checkin.retry_count}), marking as issue_failed"
                )
                return await self._give_up(ledger, checkin, "max retry count reached")

            return await self._issue(ledger, checkin)

    async def _recheck(self, ledger: LedgerScope, checkin: CheckIn) -> SettlementOutcome:
        """Resolve an existing hash. RETRIED means resubmit now."""
        tx_hash = checkin.issue_tx_hash
        status = checkin.status_enum
        logger.info(f"Check-in {checkin.id}: re-checking transaction {mask_tx_hash(tx_hash)}")

        tx_status = await self.issuer.check_status(tx_hash)

        if tx_status.success:
            if status is CheckInStatus.PAYMENT_SUCCESS:
                await self._claim(ledger, checkin, issue_tx_hash=tx_hash)
            return await self._finalize(ledger, checkin, tx_hash)

        if tx_status.pending:
            if checkin.retry_count >= self.max_retry_count:
                logger.warning(
                    f"Check-in {checkin.id}: max retry count reached "
                    f"({checkin.retry_count}) with {mask_tx_hash(tx_hash)} still pending"
                )
                return await self._give_up(
                    ledger, checkin, "max retry count reached: transaction still pending"
                )
            if status is CheckInStatus.PAYMENT_SUCCESS:
                await self._claim(ledger, checkin, issue_tx_hash=tx_hash)
            logger.info(f"Check-in {checkin.id}: transaction {mask_tx_hash(tx_hash)} still pending")
            return SettlementOutcome.PENDING

        if tx_status.is_ambiguous:
            logger.warning(
                f"Check-in {checkin.id}: transaction {mask_tx_hash(tx_hash)} "
                f"found without receipt, keeping hash"
            )
            outcome = await self._fail_attempt(
                ledger,
                checkin,
                CheckInStatus.ISSUING,
                "Transaction found without receipt",
            )
            # Never resubmit while the old transfer may still land
            return SettlementOutcome.PENDING if outcome is SettlementOutcome.RETRIED else outcome

        reason = "Transaction failed on chain" if tx_status.failed else "Transaction not found"
        logger.warning(f"Check-in {checkin.id}: {reason} ({mask_tx_hash(tx_hash)}), resubmitting")
        if status is CheckInStatus.PAYMENT_SUCCESS:
            moved = await ledger.checkins.transition(
                checkin.id,
                [CheckInStatus.PAYMENT_SUCCESS],
                CheckInStatus.PAYMENT_SUCCESS,
                issue_tx_hash=None,
            )
            await ledger.commit()
            return SettlementOutcome.RETRIED if moved else SettlementOutcome.SKIPPED
        return await self._fail_attempt(
            ledger,
            checkin,
            CheckInStatus.PAYMENT_SUCCESS,
            reason,
            issue_tx_hash=None,
        )

    async def _issue(self, ledger: LedgerScope, checkin: CheckIn) -> SettlementOutcome:
        """Submit a fresh transfer for a record without a hash."""
        user = await ledger.users.get_by_id(checkin.user_id)
        if user is None:
            logger.error(f"Check-in {checkin.id}: user {checkin.user_id} not found")
            return await self._give_up(ledger, checkin, f"user not found: {checkin.user_id}")

        if not await self._claim(ledger, checkin):
            return SettlementOutcome.SKIPPED

        logger.info(
            f"Check-in {checkin.id}: issuing {self.reward_amount} tokens "
            f"to {mask_address(user.wallet_address)}"
        )

        try:
            tx_hash = await self.issuer.issue(user.wallet_address, self.reward_amount)
        except TransactionTimeoutError as e:
            logger.warning(f"Check-in {checkin.id}: confirmation timed out, will re-check: {e}")
            await ledger.checkins.transition(
                checkin.id,
                [CheckInStatus.ISSUING],
                CheckInStatus.ISSUING,
                issue_tx_hash=e.tx_hash,
                failure_reason=_reason(str(e)),
            )
            await ledger.commit()
            return SettlementOutcome.PENDING
        except Exception as e:
            if is_terminal(e):
                logger.error(f"Check-in {checkin.id}: invalid issuance input: {e}")
                return await self._give_up(ledger, checkin, str(e), expected=CheckInStatus.ISSUING)
            if not is_retryable(e):
                raise
            logger.error(f"Check-in {checkin.id}: issuance failed: {e}")
            # A submission error may carry the hash of a transfer that did go out
            keep_hash = e.tx_hash if isinstance(e, ChainSubmissionError) else None
            return await self._fail_attempt(
                ledger,
                checkin,
                CheckInStatus.PAYMENT_SUCCESS,
                str(e),
                expected=CheckInStatus.ISSUING,
                issue_tx_hash=keep_hash,
            )

        await ledger.checkins.transition(
            checkin.id,
            [CheckInStatus.ISSUING],
            CheckInStatus.ISSUING,
            issue_tx_hash=tx_hash,
            failure_reason=None,
        )
        await ledger.commit()
        logger.info(f"Check-in {checkin.id}: transaction {tx_hash} sent and saved")

        try:
            tx_status = await self.issuer.check_status(tx_hash)
        except ChainClientError as e:
            logger.warning(f"Check-in {checkin.id}: immediate status check failed: {e}")
            return SettlementOutcome.PENDING

        if tx_status.success:
            return await self._finalize(ledger, checkin, tx_hash)

        logger.info(f"Check-in {checkin.id}: transaction {tx_hash} not confirmed yet")
        return SettlementOutcome.PENDING

    async def _claim(self, ledger: LedgerScope, checkin: CheckIn, **fields: Any) -> bool:
        moved = await ledger.checkins.transition(
            checkin.id, WORKER_STATUSES, CheckInStatus.ISSUING, **fields
        )
        await ledger.commit()
        if not moved:
            logger.info(f"Check-in {checkin.id} changed concurrently, skipping")
        return moved

    async def _finalize(self, ledger: LedgerScope, checkin: CheckIn, tx_hash: str) -> SettlementOutcome:
        """Mark success and credit the user in one transaction."""
        issued_at = utc_now()
        moved = await ledger.checkins.mark_success(
            checkin.id, tx_hash, self.reward_amount, issued_at
        )
        if not moved:
            await ledger.rollback()
            logger.info(f"Check-in {checkin.id} already finalized, not crediting again")
            return SettlementOutcome.SKIPPED

        credited = await ledger.users.credit_checkin_reward(
            checkin.user_id, self.reward_amount, issued_at
        )
        if not credited:
            logger.error(f"Check-in {checkin.id}: user {checkin.user_id} missing, reward not credited")
        await ledger.commit()

        logger.success(
            f"Check-in {checkin.id} settled: {self.reward_amount} tokens, tx {tx_hash}"
        )
        return SettlementOutcome.SUCCEEDED

    async def _fail_attempt(
        self,
        ledger: LedgerScope,
        checkin: CheckIn,
        target: CheckInStatus,
        reason: str,
        expected: CheckInStatus | None = None,
        **fields: Any,
    ) -> SettlementOutcome:
        """Count a failed attempt, giving up once the ceiling is reached."""
        source = expected or checkin.status_enum
        attempts = checkin.retry_count + 1

        if attempts >= self.max_retry_count:
            logger.warning(
                f"Check-in {checkin.id}: attempt {attempts} failed, "
                f"max retry count reached: {reason}"
            )
            fields.setdefault("issue_tx_hash", checkin.issue_tx_hash)
            await ledger.checkins.transition(
                checkin.id,
                [source],
                CheckInStatus.ISSUE_FAILED,
                increment_retry=True,
                failure_reason=_reason(f"max retry count reached: {reason}"),
                **fields,
            )
            await ledger.commit()
            return SettlementOutcome.FAILED

        moved = await ledger.checkins.transition(
            checkin.id,
            [source],
            target,
            increment_retry=True,
            failure_reason=_reason(reason),
            **fields,
        )
        await ledger.commit()
        if not moved:
            logger.info(f"Check-in {checkin.id} changed concurrently, skipping")
            return SettlementOutcome.SKIPPED

        logger.info(f"Check-in {checkin.id}: attempt {attempts} failed, back to {target.value}")
        return SettlementOutcome.RETRIED

    async def _give_up(
        self,
        ledger: LedgerScope,
        checkin: CheckIn,
        reason: str,
        expected: CheckInStatus | None = None,
    ) -> SettlementOutcome:
        source = expected or checkin.status_enum
        await ledger.checkins.transition(
            checkin.id,
            [source],
            CheckInStatus.ISSUE_FAILED,
            failure_reason=_reason(reason),
        )
        await ledger.commit()
        return SettlementOutcome.FAILED
