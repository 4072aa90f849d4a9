"""
Blockchain services.

- chain_client.py - RPC adapter (balances, nonce, fees, submit, lookups)
- token_issuer/ - builds, signs and submits reward transfers, classifies hashes
"""

from dedata.services.blockchain.chain_client import ChainClient, Web3ChainClient

__all__ = ["ChainClient", "Web3ChainClient"]
