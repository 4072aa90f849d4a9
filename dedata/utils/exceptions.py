"""
Exception handling utilities.

Defines the service's exception hierarchy and categorizes exceptions
by handling strategy.
"""

from sqlalchemy.exc import OperationalError


class DedataError(Exception):
    """Base class for all service errors."""


# Validation errors - rejected immediately, never retried


class InvalidInputError(DedataError):
    """Raised when caller-supplied input is malformed."""


class InvalidAddressError(InvalidInputError):
    """Raised when a wallet address is malformed."""


class InvalidAmountError(InvalidInputError):
    """Raised when a token amount is not a positive finite number."""


# Payment gateway errors


class GatewayError(DedataError):
    """Raised when the payment gateway call fails or answers unexpectedly."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(GatewayError):
    """Raised when the documented verify rate limit is exceeded."""


# Blockchain errors


class ChainError(DedataError):
    """Base class for blockchain errors. Carries the tx hash when known."""

    def __init__(self, message: str, tx_hash: str | None = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class ChainClientError(ChainError):
    """Raised when an RPC call fails (transport, timeout, node error)."""


class ChainMismatchError(ChainError):
    """Raised when the RPC node serves a different chain than configured."""


class ChainSubmissionError(ChainError):
    """Raised when a transfer could not be built, signed or submitted."""


class InsufficientGasBalanceError(ChainSubmissionError):
    """Raised when the issuer wallet holds no native coin for gas."""


class InsufficientTokenBalanceError(ChainSubmissionError):
    """Raised when the issuer wallet holds fewer tokens than required."""


class ChainConfirmationError(ChainError):
    """Raised when a submitted transaction does not confirm successfully."""


class TransactionRevertedError(ChainConfirmationError):
    """Raised when the transaction was mined with a failed status."""


class TransactionReplacedError(ChainConfirmationError):
    """Raised when the sender nonce moved past the transaction without a receipt."""


class TransactionTimeoutError(ChainConfirmationError):
    """Raised when the transaction is still pending after the confirmation timeout."""


class TransactionDroppedError(ChainConfirmationError):
    """Raised when the transaction disappeared from the network."""


# Check-in errors


class CheckInError(DedataError):
    """Base class for check-in request errors."""


class UserNotFoundError(CheckInError):
    """Raised when the user account does not exist."""


class WalletNotBoundError(CheckInError):
    """Raised when the user has no wallet to receive rewards."""


class AlreadyCheckedInError(CheckInError):
    """Raised when the user already checked in today."""


class CheckInInProgressError(CheckInError):
    """Raised when a paid check-in for the user is still settling."""


class CheckInNotFoundError(CheckInError):
    """Raised when no check-in matches the order."""


class CheckInOwnershipError(CheckInError):
    """Raised when the order belongs to another user."""


class InvalidCheckInStatusError(CheckInError):
    """Raised when the check-in is not in a state that allows the operation."""


class InvalidTransitionError(DedataError):
    """Raised when a state transition is not part of the check-in state machine."""


# Exception categories based on handling strategy

# Retry on the next worker tick
RETRYABLE_ERRORS = (
    ChainSubmissionError,
    ChainClientError,
    ChainConfirmationError,
    GatewayError,
    OperationalError,
)

# Never retried, record goes to a terminal state
TERMINAL_ERRORS = (InvalidInputError,)


def is_retryable(exc: Exception) -> bool:
    """
    Check if the operation can be retried later.

    Args:
        exc: Exception to check

    Returns:
        True if exception is transient
    """
    return isinstance(exc, RETRYABLE_ERRORS) and not isinstance(exc, TERMINAL_ERRORS)


def is_terminal(exc: Exception) -> bool:
    """
    Check if the exception must end the record's processing.

    Args:
        exc: Exception to check

    Returns:
        True if exception is terminal
    """
    return isinstance(exc, TERMINAL_ERRORS)
