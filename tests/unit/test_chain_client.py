"""Unit tests for the Web3 chain client adapter (AsyncWeb3 mocked)."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from hexbytes import HexBytes
from web3.exceptions import TransactionNotFound, Web3Exception

from dedata.services.blockchain import Web3ChainClient
from dedata.utils.exceptions import ChainClientError
from tests.fakes import TOKEN_ADDRESS, USER_WALLET

TX_HASH = "0x" + "cd" * 32


@pytest.fixture
def web3():
    """AsyncWeb3 stand-in."""
    mock = MagicMock()
    mock.eth.get_balance = AsyncMock(return_value=10**18)
    mock.eth.get_transaction_count = AsyncMock(return_value=7)
    mock.eth.get_block = AsyncMock(return_value={"baseFeePerGas": 30 * 10**9})
    mock.eth.estimate_gas = AsyncMock(return_value=50_000)
    mock.eth.send_raw_transaction = AsyncMock(return_value=HexBytes(TX_HASH))
    mock.eth.get_transaction_receipt = AsyncMock(return_value={"status": 1, "blockNumber": 5})
    mock.eth.get_transaction = AsyncMock(return_value={"hash": TX_HASH, "blockNumber": None})
    mock.eth.contract.return_value.functions.balanceOf.return_value.call = AsyncMock(
        return_value=10**24
    )
    return mock


@pytest.fixture
def client(web3):
    return Web3ChainClient("https://rpc.test", TOKEN_ADDRESS, timeout=1, web3=web3)


class TestQueries:
    """Tests for read calls."""

    @pytest.mark.asyncio
    async def test_balances_and_nonce(self, client, web3):
        assert await client.account_balance(USER_WALLET) == 10**18
        assert await client.token_balance(USER_WALLET) == 10**24
        assert await client.pending_nonce(USER_WALLET) == 7

        args = web3.eth.get_transaction_count.call_args.args
        assert args[1] == "pending"

    @pytest.mark.asyncio
    async def test_base_fee(self, client, web3):
        assert await client.latest_base_fee() == 30 * 10**9

        web3.eth.get_block.return_value = {"number": 1}
        assert await client.latest_base_fee() is None

    @pytest.mark.asyncio
    async def test_base_fee_lookup_failure_is_none(self, client, web3):
        web3.eth.get_block.side_effect = Web3Exception("boom")

        assert await client.latest_base_fee() is None

    @pytest.mark.asyncio
    async def test_rpc_error_is_wrapped(self, client, web3):
        web3.eth.estimate_gas.side_effect = Web3Exception("execution reverted")

        with pytest.raises(ChainClientError):
            await client.estimate_gas({})

    @pytest.mark.asyncio
    async def test_timeout_is_wrapped(self, client, web3):
        async def hang(*args):
            await asyncio.sleep(10)

        web3.eth.get_balance = hang
        client.timeout = 0.01

        with pytest.raises(ChainClientError):
            await client.account_balance(USER_WALLET)


class TestSubmitAndLookup:
    """Tests for submission and hash lookups."""

    @pytest.mark.asyncio
    async def test_submit_returns_hex_hash(self, client):
        assert await client.submit(b"\x02raw") == TX_HASH

    @pytest.mark.asyncio
    async def test_submit_error(self, client, web3):
        web3.eth.send_raw_transaction.side_effect = OSError("connection reset")

        with pytest.raises(ChainClientError):
            await client.submit(b"\x02raw")

    @pytest.mark.asyncio
    async def test_receipt(self, client, web3):
        assert (await client.lookup_receipt(TX_HASH))["status"] == 1

        web3.eth.get_transaction_receipt.side_effect = TransactionNotFound("unknown")
        assert await client.lookup_receipt(TX_HASH) is None

    @pytest.mark.asyncio
    async def test_transaction_pending_flag(self, client, web3):
        tx, is_pending = await client.lookup_transaction(TX_HASH)
        assert tx["hash"] == TX_HASH
        assert is_pending

        web3.eth.get_transaction.return_value = {"hash": TX_HASH, "blockNumber": 9}
        _, is_pending = await client.lookup_transaction(TX_HASH)
        assert not is_pending

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, client, web3):
        web3.eth.get_transaction.side_effect = TransactionNotFound("unknown")

        assert await client.lookup_transaction(TX_HASH) is None

    @pytest.mark.asyncio
    async def test_close_disconnects_provider(self, client, web3):
        web3.provider.disconnect = AsyncMock()

        await client.close()

        web3.provider.disconnect.assert_awaited_once()
