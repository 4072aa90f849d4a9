"""
Token Issuer Module.

Module structure:
- balance_checker.py - Issuer wallet balance checks
- fee_calculator.py - Gas limit and fee parameters
- confirmation.py - Receipt polling with replacement detection
- transaction_status.py - Hash classification
- This file (__init__.py) - Main TokenIssuer class orchestrating all components

Turns "pay N tokens to address A" into a signed, submitted transfer.
"""

import asyncio
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from eth_abi import encode
from eth_account import Account
from loguru import logger
from web3 import Web3

from dedata.config.constants import POST_SUBMIT_VISIBILITY_DELAY, TOKEN_DECIMALS
from dedata.services.blockchain.chain_client import ChainClient
from dedata.services.blockchain.constants import TRANSFER_SELECTOR, TX_STATUS_SUCCESS
from dedata.utils.exceptions import (
    ChainClientError,
    ChainSubmissionError,
    TransactionRevertedError,
)
from dedata.utils.security import mask_address, mask_tx_hash
from dedata.utils.validation import normalize_address, to_base_units

from .balance_checker import BalanceChecker
from .confirmation import ConfirmationWaiter
from .fee_calculator import FeeCalculator
from .transaction_status import TransactionStatus, TransactionStatusChecker

if TYPE_CHECKING:
    from dedata.config.settings import Settings

__all__ = ["TokenIssuer", "TransactionStatus", "encode_transfer"]


def encode_transfer(to_address: str, amount: int) -> bytes:
    """
    Calldata for ERC-20 transfer(address,uint256).

    Args:
        to_address: Checksummed recipient
        amount: Amount in base units

    Returns:
        Calldata bytes
    """
    return TRANSFER_SELECTOR + encode(["address", "uint256"], [to_address, amount])


class TokenIssuer:
    """
    Issues reward tokens from the issuer wallet.

    Features:
    - EIP-1559 transfers, returned without waiting for confirmation
    - Legacy fallback when the chain reports no base fee, confirmed inline
    - Nonce serialization across concurrent issues
    - Hash status classification for crash recovery
    """

    def __init__(
        self,
        chain: ChainClient,
        private_key: str | None,
        token_address: str,
        chain_id: int,
        gas_limit: int = 100_000,
        priority_fee_gwei: int = 35,
        max_gas_price_gwei: int = 50,
        decimals: int = TOKEN_DECIMALS,
        confirmation_poll_interval: float = 3.0,
        confirmation_timeout: float = 120.0,
        confirmation_nonce_check_every: int = 10,
        ambiguous_recheck_attempts: int = 3,
        ambiguous_recheck_delay: float = 2.0,
        post_submit_delay: float = POST_SUBMIT_VISIBILITY_DELAY,
    ) -> None:
        """
        Initialize token issuer.

        Args:
            chain: Chain client
            private_key: Issuer signing key (None disables issuance)
            token_address: Reward token contract
            chain_id: EIP-155 chain id
            gas_limit: Fallback gas limit
            priority_fee_gwei: EIP-1559 priority fee
            max_gas_price_gwei: Legacy gas price cap
            decimals: Token decimal exponent
            confirmation_poll_interval: Legacy confirmation poll interval
            confirmation_timeout: Legacy confirmation timeout
            confirmation_nonce_check_every: Nonce cross-check cadence
            ambiguous_recheck_attempts: Re-checks of an ambiguous status
            ambiguous_recheck_delay: Seconds between those re-checks
            post_submit_delay: Wait before the post-submit visibility check
        """
        self.chain = chain
        self.token_address = Web3.to_checksum_address(token_address)
        self.chain_id = chain_id
        self.decimals = decimals
        self.post_submit_delay = post_submit_delay

        self._private_key = private_key
        self.sender_address: str | None = (
            Account.from_key(private_key).address if private_key else None
        )

        # Nonce lock for preventing races between concurrent issues
        self._nonce_lock = asyncio.Lock()

        self.balance_checker = BalanceChecker(chain)
        self.fee_calculator = FeeCalculator(
            chain,
            fallback_gas_limit=gas_limit,
            priority_fee_gwei=priority_fee_gwei,
            max_gas_price_gwei=max_gas_price_gwei,
        )
        self.status_checker = TransactionStatusChecker(
            chain,
            ambiguous_recheck_attempts=ambiguous_recheck_attempts,
            ambiguous_recheck_delay=ambiguous_recheck_delay,
        )
        self.confirmation = ConfirmationWaiter(
            chain,
            sender_address=self.sender_address or "",
            poll_interval=confirmation_poll_interval,
            timeout=confirmation_timeout,
            nonce_check_every=confirmation_nonce_check_every,
        )

        if self.sender_address:
            logger.info(f"Token issuer initialized for {mask_address(self.sender_address)}")
        else:
            logger.warning("Token issuer has no private key, issuance disabled")

    @classmethod
    def from_settings(cls, chain: ChainClient, settings: "Settings") -> "TokenIssuer":
        """Build issuer from application settings."""
        return cls(
            chain,
            private_key=settings.issuer_private_key,
            token_address=settings.reward_token_address,
            chain_id=settings.chain_id,
            gas_limit=settings.gas_limit,
            priority_fee_gwei=settings.priority_fee_gwei,
            max_gas_price_gwei=settings.max_gas_price_gwei,
            confirmation_poll_interval=settings.confirmation_poll_interval,
            confirmation_timeout=settings.confirmation_timeout,
            confirmation_nonce_check_every=settings.confirmation_nonce_check_every,
            ambiguous_recheck_attempts=settings.ambiguous_recheck_attempts,
            ambiguous_recheck_delay=settings.ambiguous_recheck_delay,
        )

    async def issue(self, to_address: str, amount: Decimal | int | str) -> str:
        """
        Transfer reward tokens.

        Args:
            to_address: Recipient address
            amount: Whole-token amount

        Returns:
            Transaction hash

        Raises:
            InvalidInputError: Malformed address or amount
            ChainSubmissionError: Transfer not submitted (tx_hash set if it may have been)
            ChainConfirmationError: Legacy transfer submitted but not confirmed
        """
        if not self._private_key or not self.sender_address:
            raise ChainSubmissionError("Issuer private key not configured")

        recipient = normalize_address(to_address)
        amount_units = to_base_units(amount, self.decimals)
        data = encode_transfer(recipient, amount_units)

        logger.info(
            f"Issuing {amount} tokens to {mask_address(recipient)}\n"
            f"  From: {mask_address(self.sender_address)}\n"
            f"  Amount (base units): {amount_units}"
        )

        async with self._nonce_lock:
            try:
                await self.balance_checker.ensure_gas_balance(self.sender_address)
                await self.balance_checker.check_token_balance(self.sender_address, amount_units)

                nonce = await self.chain.pending_nonce(self.sender_address)
                logger.debug(f"Acquired nonce {nonce} for {mask_address(self.sender_address)}")

                base_fee = await self.chain.latest_base_fee()
                if base_fee is None:
                    logger.warning("No base fee available, falling back to legacy transaction")
                    return await self._issue_legacy(data, nonce)

                return await self._issue_eip1559(data, nonce, base_fee)
            except ChainClientError as e:
                raise ChainSubmissionError(f"RPC failure before submission: {e}") from e

    async def check_status(self, tx_hash: str) -> TransactionStatus:
        """
        Classify a transaction hash.

        Args:
            tx_hash: Transaction hash

        Returns:
            TransactionStatus

        Raises:
            ChainClientError: Lookup failed for a reason other than "not found"
        """
        return await self.status_checker.check_status(tx_hash)

    async def wait_for_confirmation(
        self, tx_hash: str, tx_nonce: int | None = None
    ) -> dict[str, Any]:
        """Poll until mined. See ConfirmationWaiter.wait_for_confirmation."""
        return await self.confirmation.wait_for_confirmation(tx_hash, tx_nonce)

    async def _issue_eip1559(self, data: bytes, nonce: int, base_fee: int) -> str:
        max_fee, priority_fee = self.fee_calculator.eip1559_fees(base_fee)
        gas_limit = await self.fee_calculator.gas_limit(self._call(data))

        transaction = {
            "type": 2,
            "chainId": self.chain_id,
            "nonce": nonce,
            "to": self.token_address,
            "value": 0,
            "data": Web3.to_hex(data),
            "gas": gas_limit,
            "maxFeePerGas": max_fee,
            "maxPriorityFeePerGas": priority_fee,
        }

        tx_hash = await self._sign_and_submit(transaction)
        logger.info(
            f"Transaction sent! Hash: {tx_hash}\n"
            f"  Type: EIP-1559\n"
            f"  Nonce: {nonce}\n"
            f"  Gas: {gas_limit}\n"
            f"  Max fee: {Web3.from_wei(max_fee, 'gwei')} Gwei"
        )
        return tx_hash

    async def _issue_legacy(self, data: bytes, nonce: int) -> str:
        gas_price = await self.fee_calculator.legacy_gas_price()
        gas_limit = self.fee_calculator.fallback_gas_limit

        transaction = {
            "chainId": self.chain_id,
            "nonce": nonce,
            "to": self.token_address,
            "value": 0,
            "data": Web3.to_hex(data),
            "gas": gas_limit,
            "gasPrice": gas_price,
        }

        tx_hash = await self._sign_and_submit(transaction)
        logger.info(
            f"Transaction sent! Hash: {tx_hash}\n"
            f"  Type: Legacy\n"
            f"  Nonce: {nonce}\n"
            f"  Gas: {gas_limit}\n"
            f"  Gas Price: {Web3.from_wei(gas_price, 'gwei')} Gwei"
        )

        # No base fee means no later fee-market recheck, confirm here
        receipt = await self.confirmation.wait_for_confirmation(tx_hash, tx_nonce=nonce)
        if receipt.get("status") != TX_STATUS_SUCCESS:
            logger.error(f"Transaction {tx_hash} reverted on chain")
            raise TransactionRevertedError(
                f"Transaction reverted in block {receipt.get('blockNumber')}",
                tx_hash=tx_hash,
            )

        logger.success(f"Legacy transaction {tx_hash} confirmed in block {receipt.get('blockNumber')}")
        return tx_hash

    def _call(self, data: bytes) -> dict[str, Any]:
        return {
            "from": self.sender_address,
            "to": self.token_address,
            "value": 0,
            "data": Web3.to_hex(data),
        }

    async def _sign_and_submit(self, transaction: dict[str, Any]) -> str:
        """Sign, submit and best-effort verify visibility. Returns the tx hash."""
        account = None
        try:
            account = Account.from_key(self._private_key)
            signed = account.sign_transaction(transaction)
        except (TypeError, ValueError) as e:
            raise ChainSubmissionError(f"Failed to sign transaction: {e}") from e
        finally:
            # Drop the Account object right after signing
            if account:
                del account

        tx_hash = Web3.to_hex(signed.hash)
        logger.info(f"Transaction signed: {tx_hash}")

        try:
            await self.chain.submit(signed.raw_transaction)
        except ChainClientError as e:
            logger.error(f"Failed to send transaction {tx_hash}: {e}")
            raise ChainSubmissionError(f"Failed to send transaction: {e}", tx_hash=tx_hash) from e

        await self._verify_visible(tx_hash)
        return tx_hash

    async def _verify_visible(self, tx_hash: str) -> None:
        await asyncio.sleep(self.post_submit_delay)
        try:
            lookup = await self.chain.lookup_transaction(tx_hash)
        except ChainClientError as e:
            logger.warning(f"Transaction {mask_tx_hash(tx_hash)} sent, visibility check failed: {e}")
            return

        if lookup is None:
            logger.warning(
                f"Transaction {mask_tx_hash(tx_hash)} sent but not visible yet "
                f"(node may still be propagating)"
            )
        else:
            logger.info(f"Transaction {mask_tx_hash(tx_hash)} visible, pending={lookup[1]}")
