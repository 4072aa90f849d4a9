"""
Balance Checker for Token Issuer.

Pre-submission checks of the issuer wallet.
"""

from loguru import logger

from dedata.services.blockchain.chain_client import ChainClient
from dedata.utils.exceptions import (
    ChainClientError,
    InsufficientGasBalanceError,
    InsufficientTokenBalanceError,
)
from dedata.utils.security import mask_address


class BalanceChecker:
    """Checks the issuer wallet can pay for gas and holds enough tokens."""

    def __init__(self, chain: ChainClient):
        """
        Initialize balance checker.

        Args:
            chain: Chain client
        """
        self.chain = chain

    async def ensure_gas_balance(self, address: str) -> int:
        """
        Require a non-zero native balance.

        Args:
            address: Issuer address

        Returns:
            Native balance in wei

        Raises:
            InsufficientGasBalanceError: Balance is zero
            ChainClientError: Lookup failed
        """
        balance = await self.chain.account_balance(address)
        logger.info(f"Issuer {mask_address(address)} native balance: {balance} wei")

        if balance == 0:
            raise InsufficientGasBalanceError(
                f"Issuer wallet {mask_address(address)} has no native balance for gas"
            )
        return balance

    async def check_token_balance(self, address: str, required: int) -> None:
        """
        Best-effort token balance check.

        A failed lookup is logged and ignored, the transfer itself is the
        authoritative check.

        Args:
            address: Issuer address
            required: Amount in base units

        Raises:
            InsufficientTokenBalanceError: Balance is known and too low
        """
        try:
            balance = await self.chain.token_balance(address)
        except ChainClientError as e:
            logger.warning(f"Failed to check issuer token balance: {e}")
            return

        logger.info(f"Issuer {mask_address(address)} token balance: {balance}")
        if balance < required:
            raise InsufficientTokenBalanceError(
                f"Insufficient token balance: have {balance}, need {required}"
            )
