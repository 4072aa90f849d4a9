"""Address and amount validation."""

import re
from decimal import Decimal, InvalidOperation

from web3 import Web3

from dedata.utils.exceptions import InvalidAddressError, InvalidAmountError

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")

# Zero address - never a valid reward recipient
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def is_valid_address(address: str | None) -> bool:
    """
    Check EVM address format.

    Mixed-case addresses must carry a valid EIP-55 checksum; all-lower
    and all-upper hex is accepted as is.

    Args:
        address: Address string

    Returns:
        True if valid
    """
    if not address or not ADDRESS_PATTERN.match(address):
        return False

    body = address[2:]
    if body.islower() or body.isupper() or body.isdigit():
        return True
    return Web3.is_checksum_address(address)


def normalize_address(address: str | None) -> str:
    """
    Validate and checksum a recipient address.

    Args:
        address: Address string

    Returns:
        Checksummed address

    Raises:
        InvalidAddressError: Malformed or zero address
    """
    if not is_valid_address(address):
        raise InvalidAddressError(f"Invalid recipient address: {address!r}")
    if address.lower() == ZERO_ADDRESS:
        raise InvalidAddressError("Zero address is not a valid recipient")
    return Web3.to_checksum_address(address)


def to_base_units(amount: Decimal | int | str, decimals: int) -> int:
    """
    Convert a whole-token amount into the token's smallest unit.

    Args:
        amount: Positive token amount
        decimals: Token decimal exponent

    Returns:
        Integer amount in base units

    Raises:
        InvalidAmountError: Non-numeric, non-positive or too precise amount
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError(f"Invalid token amount: {amount!r}") from e

    if not value.is_finite() or value <= 0:
        raise InvalidAmountError(f"Token amount must be positive: {amount!r}")

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise InvalidAmountError(
            f"Token amount {amount} has more than {decimals} decimal places"
        )
    return int(scaled)
