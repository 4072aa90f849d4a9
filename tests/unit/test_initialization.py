"""Unit tests for worker start-up checks."""

import pytest

from dedata.utils.exceptions import ChainClientError, ChainMismatchError
from jobs.initialization.services import verify_chain_id
from tests.fakes import FakeChainClient


class TestVerifyChainId:
    """Tests for the configured chain id check."""

    @pytest.mark.asyncio
    async def test_matching_chain(self):
        await verify_chain_id(FakeChainClient(chain_id=137), 137)

    @pytest.mark.asyncio
    async def test_other_chain_is_rejected(self):
        with pytest.raises(ChainMismatchError, match="chain id 80002"):
            await verify_chain_id(FakeChainClient(chain_id=80002), 137)

    @pytest.mark.asyncio
    async def test_lookup_error_propagates(self):
        chain = FakeChainClient()

        async def unreachable():
            raise ChainClientError("rpc down")

        chain.chain_id = unreachable

        with pytest.raises(ChainClientError):
            await verify_chain_id(chain, 137)
