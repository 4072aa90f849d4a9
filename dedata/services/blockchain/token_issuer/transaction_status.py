"""
Transaction Status Checker.

Classifies a previously submitted transaction hash into not found,
pending, confirmed success or confirmed failure.
"""

import asyncio
from dataclasses import dataclass

from loguru import logger

from dedata.services.blockchain.chain_client import ChainClient
from dedata.services.blockchain.constants import TX_STATUS_SUCCESS
from dedata.utils.security import mask_tx_hash


@dataclass(frozen=True)
class TransactionStatus:
    """Observed state of a transaction hash."""

    tx_hash: str
    found: bool
    pending: bool = False
    success: bool = False
    failed: bool = False
    block_number: int | None = None

    @property
    def confirmed(self) -> bool:
        """Mined, with either outcome."""
        return self.success or self.failed

    @property
    def is_ambiguous(self) -> bool:
        """Known to the node, no longer pending, but without a receipt."""
        return self.found and not self.pending and not self.confirmed


class TransactionStatusChecker:
    """
    Checks transaction status on the blockchain.

    Lookup errors other than "not found" propagate to the caller.
    """

    def __init__(
        self,
        chain: ChainClient,
        ambiguous_recheck_attempts: int = 3,
        ambiguous_recheck_delay: float = 2.0,
    ) -> None:
        """
        Initialize transaction status checker.

        Args:
            chain: Chain client
            ambiguous_recheck_attempts: Extra lookups when the result is ambiguous
            ambiguous_recheck_delay: Seconds between those lookups
        """
        self.chain = chain
        self.ambiguous_recheck_attempts = ambiguous_recheck_attempts
        self.ambiguous_recheck_delay = ambiguous_recheck_delay

    async def check_status(self, tx_hash: str) -> TransactionStatus:
        """
        Check status of an existing transaction.

        An ambiguous answer (transaction known, not pending, no receipt)
        is usually a node that indexed the block before the receipt, so it
        is re-checked a bounded number of times before being returned.

        Args:
            tx_hash: Transaction hash to check

        Returns:
            TransactionStatus
        """
        status = await self._check_once(tx_hash)

        attempt = 0
        while status.is_ambiguous and attempt < self.ambiguous_recheck_attempts:
            attempt += 1
            logger.info(
                f"Transaction {mask_tx_hash(tx_hash)} found without receipt, "
                f"re-checking ({attempt}/{self.ambiguous_recheck_attempts})"
            )
            await asyncio.sleep(self.ambiguous_recheck_delay)
            status = await self._check_once(tx_hash)

        if status.is_ambiguous:
            logger.warning(
                f"Transaction {mask_tx_hash(tx_hash)} still has no receipt "
                f"after {attempt} re-checks"
            )
        return status

    async def _check_once(self, tx_hash: str) -> TransactionStatus:
        receipt = await self.chain.lookup_receipt(tx_hash)
        if receipt is not None:
            success = receipt.get("status") == TX_STATUS_SUCCESS
            block_number = receipt.get("blockNumber")
            logger.info(
                f"Transaction {mask_tx_hash(tx_hash)} "
                f"{'confirmed' if success else 'failed'} in block {block_number}"
            )
            return TransactionStatus(
                tx_hash=tx_hash,
                found=True,
                pending=False,
                success=success,
                failed=not success,
                block_number=block_number,
            )

        lookup = await self.chain.lookup_transaction(tx_hash)
        if lookup is None:
            logger.info(f"Transaction {mask_tx_hash(tx_hash)} not found")
            return TransactionStatus(tx_hash=tx_hash, found=False)

        tx, is_pending = lookup
        if is_pending:
            return TransactionStatus(tx_hash=tx_hash, found=True, pending=True)

        return TransactionStatus(
            tx_hash=tx_hash,
            found=True,
            pending=False,
            block_number=tx.get("blockNumber"),
        )
