"""
Payment gateway payloads.

Pydantic models for the x402 merchant API responses.
"""

from datetime import datetime
from enum import StrEnum
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from dedata.utils.datetime_utils import ensure_utc


class GatewayResponse(BaseModel):
    """Common response envelope."""

    model_config = ConfigDict(extra="ignore")

    success: bool = False
    message: str = ""
    data: dict[str, Any] | None = None


class PaymentChallenge(BaseModel):
    """Payment-required challenge issued for a check-in."""

    model_config = ConfigDict(extra="ignore")

    order_id: str = Field(min_length=1)
    payment_address: str
    price_amount: str
    blockchain_name: str
    token_symbol: str
    expires_at: datetime | None = None

    @field_validator("price_amount", mode="before")
    @classmethod
    def price_as_text(cls, v: Any) -> str:
        """Gateway may send the price as number or string."""
        return str(v)

    @field_validator("expires_at", mode="before")
    @classmethod
    def parse_expires_at(cls, v: Any) -> datetime | None:
        """Parse RFC 3339 expiry, None if missing or malformed."""
        if v in (None, ""):
            return None
        if isinstance(v, datetime):
            return ensure_utc(v)
        try:
            return ensure_utc(datetime.fromisoformat(str(v).replace("Z", "+00:00")))
        except ValueError:
            logger.warning(f"Failed to parse challenge expires_at: {v!r}")
            return None

    def expires_at_rfc3339(self) -> str | None:
        """Expiry formatted for callers."""
        if self.expires_at is None:
            return None
        return self.expires_at.isoformat().replace("+00:00", "Z")


class CheckInRequestResult(BaseModel):
    """Outcome of the daily check-in call: already done, or pay this."""

    already_done: bool
    challenge: PaymentChallenge | None = None


class VerifyOutcome(StrEnum):
    """Classified verify answer."""

    SETTLED = "settled"
    PENDING_CONFIRMATION = "pending_confirmation"
    NOT_FOUND = "not_found"
    INSUFFICIENT_AMOUNT = "insufficient_amount"
    FAILED = "failed"


# Gateway message codes
MESSAGE_PENDING_CONFIRMATION = "PENDING_CONFIRMATION"
MESSAGE_NO_TRANSACTION = "NO_TRANSACTION"
MESSAGE_INSUFFICIENT_AMOUNT = "INSUFFICIENT_AMOUNT"
MESSAGE_RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"


class VerificationResult(BaseModel):
    """Verify call answer."""

    success: bool
    message: str = ""

    @property
    def outcome(self) -> VerifyOutcome:
        """Map the gateway message onto an outcome."""
        if self.success:
            return VerifyOutcome.SETTLED

        message = self.message.upper()
        if MESSAGE_PENDING_CONFIRMATION in message:
            return VerifyOutcome.PENDING_CONFIRMATION
        if MESSAGE_NO_TRANSACTION in message:
            return VerifyOutcome.NOT_FOUND
        if MESSAGE_INSUFFICIENT_AMOUNT in message:
            return VerifyOutcome.INSUFFICIENT_AMOUNT
        return VerifyOutcome.FAILED

    @property
    def is_retryable(self) -> bool:
        """Only a pending confirmation is worth asking again."""
        return self.outcome is VerifyOutcome.PENDING_CONFIRMATION
