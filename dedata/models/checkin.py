"""
Check-in model.

One row per check-in attempt. Rows are never deleted and form the audit
trail of the settlement pipeline.
"""

import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from dedata.models.base import Base
from dedata.models.enums import ACTIVE_STATUSES, CheckInStatus
from dedata.models.types import TokenAmountType
from dedata.utils.datetime_utils import ensure_utc

_ACTIVE_STATUS_SQL = ", ".join(f"'{status.value}'" for status in sorted(ACTIVE_STATUSES))


class CheckIn(Base):
    """
    Daily check-in record.

    Payment fields are filled once the gateway issues a challenge,
    settlement fields by the settlement worker.
    """

    __tablename__ = "checkins"
    __table_args__ = (
        # At most one active pipeline per user
        Index(
            "uq_checkins_user_active",
            "user_id",
            unique=True,
            postgresql_where=text(f"status IN ({_ACTIVE_STATUS_SQL})"),
            sqlite_where=text(f"status IN ({_ACTIVE_STATUS_SQL})"),
        ),
        Index("ix_checkins_user_status", "user_id", "status"),
    )

    # Primary key
    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # Owner
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # Status
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=CheckInStatus.PENDING_PAYMENT.value,
        index=True,
        comment="pending_payment, payment_failed, payment_success, issuing, success, issue_failed",
    )

    # Payment challenge
    order_id: Mapped[str | None] = mapped_column(
        String(128), nullable=True, unique=True, comment="Gateway order id"
    )
    payment_address: Mapped[str | None] = mapped_column(String(256), nullable=True)
    price_amount: Mapped[str | None] = mapped_column(
        String(64), nullable=True, comment="Price as returned by the gateway"
    )
    blockchain_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    token_symbol: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    payment_tx_hash: Mapped[str | None] = mapped_column(
        String(256), nullable=True, comment="Payer transaction hash (informational)"
    )

    # Settlement
    token_amount: Mapped[Decimal | None] = mapped_column(
        TokenAmountType, nullable=True, comment="Reward tokens delivered"
    )
    issue_tx_hash: Mapped[str | None] = mapped_column(
        String(128), nullable=True, comment="Current issuance transaction hash"
    )
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )
    issued_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def status_enum(self) -> CheckInStatus:
        """Status as enum."""
        return CheckInStatus(self.status)

    def is_payment_expired(self, now: datetime) -> bool:
        """
        Check whether the payment window has elapsed.

        Args:
            now: Current time (aware)

        Returns:
            True if the record has an expiry in the past
        """
        expires_at = ensure_utc(self.payment_expires_at)
        return expires_at is not None and expires_at <= now

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CheckIn(id={self.id}, user_id={self.user_id}, "
            f"status={self.status}, order_id={self.order_id}, "
            f"retry_count={self.retry_count})>"
        )
