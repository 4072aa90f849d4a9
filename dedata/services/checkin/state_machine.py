"""
Check-in state machine helpers.

Payment-field checks made when a record enters or is read back in
``pending_payment``. Transition rules live in dedata.models.enums.
"""

from dedata.models.checkin import CheckIn
from dedata.services.payment_gateway.models import PaymentChallenge
from dedata.utils.exceptions import InvalidTransitionError

__all__ = [
    "PAYMENT_FIELDS",
    "challenge_from_record",
    "missing_payment_fields",
    "payment_fields_from_challenge",
]

PAYMENT_FIELDS = (
    "order_id",
    "payment_address",
    "price_amount",
    "blockchain_name",
    "token_symbol",
)


def missing_payment_fields(checkin: CheckIn) -> list[str]:
    """Names of payment fields a challenge-backed record lacks."""
    return [name for name in PAYMENT_FIELDS if not getattr(checkin, name)]


def payment_fields_from_challenge(challenge: PaymentChallenge) -> dict:
    """Column values for a new pending_payment record."""
    return {
        "order_id": challenge.order_id,
        "payment_address": challenge.payment_address,
        "price_amount": challenge.price_amount,
        "blockchain_name": challenge.blockchain_name,
        "token_symbol": challenge.token_symbol,
    }


def challenge_from_record(checkin: CheckIn) -> PaymentChallenge:
    """
    Rebuild the payment challenge stored on a pending record.

    Args:
        checkin: Record in pending_payment

    Returns:
        PaymentChallenge

    Raises:
        InvalidTransitionError: Record does not carry a complete challenge
    """
    missing = missing_payment_fields(checkin)
    if missing:
        raise InvalidTransitionError(
            f"Check-in {checkin.id} has no complete payment challenge (missing {', '.join(missing)})"
        )
    return PaymentChallenge(
        order_id=checkin.order_id,
        payment_address=checkin.payment_address,
        price_amount=checkin.price_amount,
        blockchain_name=checkin.blockchain_name,
        token_symbol=checkin.token_symbol,
        expires_at=checkin.payment_expires_at,
    )
