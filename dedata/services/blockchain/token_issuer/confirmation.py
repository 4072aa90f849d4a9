"""
Confirmation waiter.

Polls for a receipt until a timeout, periodically cross-checking whether
the sender's nonce has moved past the transaction.
"""

import asyncio
from typing import Any

from loguru import logger

from dedata.services.blockchain.chain_client import ChainClient
from dedata.utils.exceptions import (
    ChainClientError,
    TransactionDroppedError,
    TransactionReplacedError,
    TransactionTimeoutError,
)
from dedata.utils.security import mask_tx_hash


class ConfirmationWaiter:
    """Waits for a submitted transaction to be mined."""

    def __init__(
        self,
        chain: ChainClient,
        sender_address: str,
        poll_interval: float = 3.0,
        timeout: float = 120.0,
        nonce_check_every: int = 10,
    ) -> None:
        """
        Initialize confirmation waiter.

        Args:
            chain: Chain client
            sender_address: Address that signed the transactions
            poll_interval: Seconds between receipt lookups
            timeout: Overall wait in seconds
            nonce_check_every: Cross-check presence and nonce every Nth poll
        """
        self.chain = chain
        self.sender_address = sender_address
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.nonce_check_every = max(1, nonce_check_every)

    async def wait_for_confirmation(
        self, tx_hash: str, tx_nonce: int | None = None
    ) -> dict[str, Any]:
        """
        Poll until the transaction is mined.

        Args:
            tx_hash: Transaction hash
            tx_nonce: Nonce the transaction was signed with, if known

        Returns:
            Receipt dict (either execution outcome)

        Raises:
            TransactionReplacedError: Sender nonce advanced past the transaction
            TransactionDroppedError: Transaction vanished before the timeout
            TransactionTimeoutError: Still pending, or not mined, at the timeout
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        attempts = 0

        while loop.time() < deadline:
            attempts += 1

            try:
                receipt = await self.chain.lookup_receipt(tx_hash)
            except ChainClientError as e:
                logger.warning(f"Receipt lookup failed for {mask_tx_hash(tx_hash)}: {e}")
                receipt = None

            if receipt is not None:
                logger.info(
                    f"Transaction {mask_tx_hash(tx_hash)} mined in block "
                    f"{receipt.get('blockNumber')} after {attempts} polls"
                )
                return receipt

            if attempts % self.nonce_check_every == 0:
                tx_nonce = await self._cross_check(tx_hash, tx_nonce)

            await asyncio.sleep(self.poll_interval)

        raise await self._timeout_error(tx_hash)

    async def _cross_check(self, tx_hash: str, tx_nonce: int | None) -> int | None:
        """Detect a replaced transaction. Returns the transaction nonce if learned."""
        try:
            lookup = await self.chain.lookup_transaction(tx_hash)
            if lookup is None:
                logger.warning(f"Transaction {mask_tx_hash(tx_hash)} not visible on the node")
            else:
                tx, is_pending = lookup
                tx_nonce = tx.get("nonce", tx_nonce)
                logger.debug(f"Transaction {mask_tx_hash(tx_hash)} visible, pending={is_pending}")

            if tx_nonce is None:
                return None

            current_nonce = await self.chain.pending_nonce(self.sender_address)
            # The nonce is also consumed when the transaction itself was just mined
            receipt = (
                await self.chain.lookup_receipt(tx_hash) if current_nonce > tx_nonce else None
            )
        except ChainClientError as e:
            logger.warning(f"Cross-check failed for {mask_tx_hash(tx_hash)}: {e}")
            return tx_nonce

        if current_nonce > tx_nonce:
            if receipt is None:
                logger.error(
                    f"Transaction {mask_tx_hash(tx_hash)} replaced: "
                    f"nonce {tx_nonce}, sender pending nonce {current_nonce}"
                )
                raise TransactionReplacedError(
                    f"Transaction replaced (nonce {tx_nonce} superseded, current {current_nonce})",
                    tx_hash=tx_hash,
                )
        return tx_nonce

    async def _timeout_error(self, tx_hash: str) -> Exception:
        """Classify a timed-out transaction."""
        try:
            lookup = await self.chain.lookup_transaction(tx_hash)
        except ChainClientError as e:
            logger.warning(f"Final lookup failed for {mask_tx_hash(tx_hash)}: {e}")
            return TransactionTimeoutError(
                f"Transaction not mined within {self.timeout:.0f}s (status unknown)",
                tx_hash=tx_hash,
            )

        if lookup is None:
            logger.error(f"Transaction {mask_tx_hash(tx_hash)} disappeared from network")
            return TransactionDroppedError(
                f"Transaction disappeared from network (dropped) after {self.timeout:.0f}s",
                tx_hash=tx_hash,
            )

        _, is_pending = lookup
        if is_pending:
            logger.warning(f"Transaction {mask_tx_hash(tx_hash)} still pending at timeout")
            return TransactionTimeoutError(
                f"Transaction still pending after {self.timeout:.0f}s",
                tx_hash=tx_hash,
            )

        return TransactionTimeoutError(
            f"Transaction not mined within {self.timeout:.0f}s",
            tx_hash=tx_hash,
        )
