"""
Chain client adapter.

Thin wrapper over the JSON-RPC endpoint. Every call is bounded by
BLOCKCHAIN_TIMEOUT and failures surface as ChainClientError; "not found"
lookups return None. No retries here, retry policy belongs to callers.
"""

import asyncio
from collections.abc import Awaitable
from typing import Any, Protocol, TypeVar

from loguru import logger
from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound, Web3Exception
from web3.middleware import ExtraDataToPOAMiddleware

from dedata.config.constants import BLOCKCHAIN_RPC_TIMEOUT, BLOCKCHAIN_TIMEOUT
from dedata.services.blockchain.constants import TOKEN_ABI
from dedata.utils.exceptions import ChainClientError
from dedata.utils.security import mask_address

T = TypeVar("T")


class ChainClient(Protocol):
    """Blockchain operations used by the token issuer."""

    async def account_balance(self, address: str) -> int: ...

    async def token_balance(self, address: str) -> int: ...

    async def pending_nonce(self, address: str) -> int: ...

    async def latest_base_fee(self) -> int | None: ...

    async def suggest_gas_price(self) -> int: ...

    async def estimate_gas(self, tx: dict[str, Any]) -> int: ...

    async def chain_id(self) -> int: ...

    async def submit(self, raw_transaction: bytes) -> str: ...

    async def lookup_receipt(self, tx_hash: str) -> dict[str, Any] | None: ...

    async def lookup_transaction(
        self, tx_hash: str
    ) -> tuple[dict[str, Any], bool] | None: ...

    async def close(self) -> None: ...


class Web3ChainClient:
    """
    ChainClient backed by AsyncWeb3 over HTTP.

    Features:
    - Native and reward token balance queries
    - Nonce and fee-market data
    - Raw transaction submission
    - Receipt and transaction lookup
    """

    def __init__(
        self,
        rpc_url: str,
        token_address: str,
        timeout: float = BLOCKCHAIN_TIMEOUT,
        web3: AsyncWeb3 | None = None,
    ) -> None:
        """
        Initialize chain client.

        Args:
            rpc_url: JSON-RPC HTTP endpoint
            token_address: Reward token contract address
            timeout: Per-call timeout in seconds
            web3: Prebuilt AsyncWeb3 instance (tests)
        """
        if web3 is None:
            web3 = AsyncWeb3(
                AsyncWeb3.AsyncHTTPProvider(
                    rpc_url, request_kwargs={"timeout": BLOCKCHAIN_RPC_TIMEOUT}
                )
            )
            # Polygon and BSC blocks carry PoA extra data
            web3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

        self.web3 = web3
        self.timeout = timeout
        self.token_address = AsyncWeb3.to_checksum_address(token_address)
        self.token_contract = web3.eth.contract(address=self.token_address, abi=TOKEN_ABI)

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Await an RPC call with timeout, mapping failures to ChainClientError."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except TransactionNotFound:
            raise
        except TimeoutError as e:
            logger.error(f"RPC timeout: {operation}")
            raise ChainClientError(f"Timeout during {operation}") from e
        except (Web3Exception, OSError, ValueError) as e:
            logger.error(f"RPC error during {operation}: {e}")
            raise ChainClientError(f"{operation} failed: {e}") from e

    async def account_balance(self, address: str) -> int:
        """Native coin balance in wei."""
        checksum = AsyncWeb3.to_checksum_address(address)
        return await self._call(
            f"get_balance({mask_address(address)})", self.web3.eth.get_balance(checksum)
        )

    async def token_balance(self, address: str) -> int:
        """Reward token balance in base units."""
        checksum = AsyncWeb3.to_checksum_address(address)
        return await self._call(
            f"balanceOf({mask_address(address)})",
            self.token_contract.functions.balanceOf(checksum).call(),
        )

    async def pending_nonce(self, address: str) -> int:
        """Nonce including pending transactions."""
        checksum = AsyncWeb3.to_checksum_address(address)
        return await self._call(
            "get_transaction_count",
            self.web3.eth.get_transaction_count(checksum, "pending"),
        )

    async def latest_base_fee(self) -> int | None:
        """
        Base fee of the latest block.

        Returns:
            Base fee in wei, or None if the block has none or the
            lookup failed
        """
        try:
            block = await self._call("get_block(latest)", self.web3.eth.get_block("latest"))
        except ChainClientError as e:
            logger.warning(f"Base fee unavailable: {e}")
            return None
        return block.get("baseFeePerGas")

    async def suggest_gas_price(self) -> int:
        """Node-suggested legacy gas price in wei."""
        return await self._call("gas_price", self.web3.eth.gas_price)

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        """Gas estimate for a call."""
        return await self._call("estimate_gas", self.web3.eth.estimate_gas(tx))

    async def chain_id(self) -> int:
        """EIP-155 chain id reported by the node."""
        return await self._call("chain_id", self.web3.eth.chain_id)

    async def submit(self, raw_transaction: bytes) -> str:
        """
        Broadcast a signed transaction.

        Args:
            raw_transaction: Signed RLP bytes

        Returns:
            Transaction hash (0x-prefixed hex)
        """
        tx_hash = await self._call(
            "send_raw_transaction", self.web3.eth.send_raw_transaction(raw_transaction)
        )
        return AsyncWeb3.to_hex(tx_hash)

    async def lookup_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        """
        Receipt of a mined transaction.

        Returns:
            Receipt dict, or None if not mined or unknown
        """
        try:
            receipt = await self._call(
                "get_transaction_receipt", self.web3.eth.get_transaction_receipt(tx_hash)
            )
        except TransactionNotFound:
            return None
        return dict(receipt) if receipt else None

    async def lookup_transaction(
        self, tx_hash: str
    ) -> tuple[dict[str, Any], bool] | None:
        """
        Transaction by hash.

        Returns:
            (transaction, is_pending), or None if the node does not know it
        """
        try:
            tx = await self._call("get_transaction", self.web3.eth.get_transaction(tx_hash))
        except TransactionNotFound:
            return None
        if not tx:
            return None
        return dict(tx), tx.get("blockNumber") is None

    async def close(self) -> None:
        """Close the provider's HTTP session."""
        provider = self.web3.provider
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
            logger.info("Chain client closed")
