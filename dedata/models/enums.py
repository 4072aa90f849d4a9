"""
Check-in enumerations.

Status values and the allowed transitions between them.
"""

from collections.abc import Iterable
from enum import StrEnum

from dedata.utils.exceptions import InvalidTransitionError


class CheckInStatus(StrEnum):
    """Check-in pipeline status."""

    PENDING_PAYMENT = "pending_payment"  # Challenge issued, waiting for payment
    PAYMENT_FAILED = "payment_failed"  # Challenge expired or superseded
    PAYMENT_SUCCESS = "payment_success"  # Paid, waiting for token issuance
    ISSUING = "issuing"  # Issuance in flight
    SUCCESS = "success"  # Tokens delivered
    ISSUE_FAILED = "issue_failed"  # Issuance gave up

    @property
    def is_active(self) -> bool:
        """True for statuses that hold the user's single pipeline slot."""
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        """True for statuses the pipeline never leaves on its own."""
        return self in TERMINAL_STATUSES


ACTIVE_STATUSES = frozenset(
    {
        CheckInStatus.PENDING_PAYMENT,
        CheckInStatus.PAYMENT_SUCCESS,
        CheckInStatus.ISSUING,
    }
)

TERMINAL_STATUSES = frozenset(
    {
        CheckInStatus.PAYMENT_FAILED,
        CheckInStatus.SUCCESS,
        CheckInStatus.ISSUE_FAILED,
    }
)

# Worker picks these up, in this order
WORKER_STATUSES = (CheckInStatus.PAYMENT_SUCCESS, CheckInStatus.ISSUING)

ALLOWED_TRANSITIONS: dict[CheckInStatus, frozenset[CheckInStatus]] = {
    CheckInStatus.PENDING_PAYMENT: frozenset(
        {CheckInStatus.PAYMENT_SUCCESS, CheckInStatus.PAYMENT_FAILED}
    ),
    # payment_success -> payment_success keeps the record eligible after a failed attempt
    CheckInStatus.PAYMENT_SUCCESS: frozenset(
        {
            CheckInStatus.PAYMENT_SUCCESS,
            CheckInStatus.ISSUING,
            CheckInStatus.ISSUE_FAILED,
        }
    ),
    CheckInStatus.ISSUING: frozenset(
        {
            CheckInStatus.ISSUING,
            CheckInStatus.SUCCESS,
            CheckInStatus.ISSUE_FAILED,
            CheckInStatus.PAYMENT_SUCCESS,
        }
    ),
    CheckInStatus.PAYMENT_FAILED: frozenset(),
    CheckInStatus.SUCCESS: frozenset(),
    CheckInStatus.ISSUE_FAILED: frozenset(),
}


def can_transition(source: CheckInStatus, target: CheckInStatus) -> bool:
    """Check whether source -> target is part of the state machine."""
    return target in ALLOWED_TRANSITIONS[source]


def validate_transition(
    expected: Iterable[CheckInStatus], target: CheckInStatus
) -> tuple[CheckInStatus, ...]:
    """
    Check that every expected source status may move to target.

    Args:
        expected: Allowed current statuses
        target: New status

    Returns:
        Expected statuses as tuple

    Raises:
        InvalidTransitionError: Transition not in the state machine
    """
    sources = tuple(expected)
    if not sources:
        raise InvalidTransitionError("Transition requires at least one source status")
    for source in sources:
        if not can_transition(source, target):
            raise InvalidTransitionError(f"{source.value} -> {target.value} is not allowed")
    return sources
