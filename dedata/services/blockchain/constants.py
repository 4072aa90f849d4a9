"""
Core blockchain constants.

Reward token ABI and transfer encoding details.
"""

from eth_utils import function_signature_to_4byte_selector

# Reward token ABI (ERC-20 subset)
TOKEN_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "_to", "type": "address"},
            {"name": "_value", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": False, "name": "value", "type": "uint256"},
        ],
        "name": "Transfer",
        "type": "event",
    },
]

TRANSFER_SELECTOR = function_signature_to_4byte_selector("transfer(address,uint256)")

# Gas estimate buffer: estimate + estimate // 5 (20%)
GAS_BUFFER_DIVISOR = 5

# EIP-1559 max fee = BASE_FEE_MULTIPLIER * base fee + priority fee
BASE_FEE_MULTIPLIER = 2

TX_STATUS_SUCCESS = 1
