"""
Fee Calculator for Token Issuer.

Gas limit and fee parameters for both transaction formats.
"""

from typing import Any

from loguru import logger
from web3 import Web3

from dedata.config.constants import LEGACY_GAS_PRICE_DENOMINATOR, LEGACY_GAS_PRICE_NUMERATOR
from dedata.services.blockchain.chain_client import ChainClient
from dedata.services.blockchain.constants import BASE_FEE_MULTIPLIER, GAS_BUFFER_DIVISOR
from dedata.utils.exceptions import ChainClientError


class FeeCalculator:
    """
    Computes gas limits and fees.

    Features:
    - Gas estimation with 20% buffer and configured fallback
    - EIP-1559 max fee from the latest base fee
    - Legacy gas price with markup and cap
    """

    def __init__(
        self,
        chain: ChainClient,
        fallback_gas_limit: int,
        priority_fee_gwei: int,
        max_gas_price_gwei: int,
    ) -> None:
        """
        Initialize fee calculator.

        Args:
            chain: Chain client
            fallback_gas_limit: Gas limit used when estimation fails
            priority_fee_gwei: Fixed EIP-1559 priority fee
            max_gas_price_gwei: Cap for the legacy gas price
        """
        self.chain = chain
        self.fallback_gas_limit = fallback_gas_limit
        self.priority_fee_wei = Web3.to_wei(priority_fee_gwei, "gwei")
        self.max_gas_price_wei = Web3.to_wei(max_gas_price_gwei, "gwei")

    async def gas_limit(self, call: dict[str, Any]) -> int:
        """
        Gas limit for a call: on-chain estimate plus 20%.

        Args:
            call: Call dict (from, to, value, data)

        Returns:
            Gas limit, or the configured fallback if estimation fails
        """
        try:
            estimate = await self.chain.estimate_gas(call)
        except ChainClientError as e:
            logger.warning(
                f"Gas estimation failed, using configured limit {self.fallback_gas_limit}: {e}"
            )
            return self.fallback_gas_limit

        gas_limit = estimate + estimate // GAS_BUFFER_DIVISOR
        logger.debug(f"Gas estimated: {estimate}, with buffer: {gas_limit}")
        return gas_limit

    def eip1559_fees(self, base_fee: int) -> tuple[int, int]:
        """
        Fee-market parameters.

        Args:
            base_fee: Latest block base fee in wei

        Returns:
            Tuple of (max_fee_per_gas, max_priority_fee_per_gas)
        """
        max_fee = BASE_FEE_MULTIPLIER * base_fee + self.priority_fee_wei
        logger.info(
            f"EIP-1559 fees: base {base_fee}, priority {self.priority_fee_wei}, max {max_fee}"
        )
        return max_fee, self.priority_fee_wei

    async def legacy_gas_price(self) -> int:
        """
        Suggested gas price plus 20%, capped.

        Returns:
            Gas price in wei
        """
        suggested = await self.chain.suggest_gas_price()
        gas_price = suggested * LEGACY_GAS_PRICE_NUMERATOR // LEGACY_GAS_PRICE_DENOMINATOR

        if gas_price > self.max_gas_price_wei:
            logger.warning(
                f"Gas price {gas_price} exceeds max {self.max_gas_price_wei}, using max"
            )
            gas_price = self.max_gas_price_wei

        logger.info(f"Legacy gas price: {Web3.from_wei(gas_price, 'gwei')} Gwei")
        return gas_price
