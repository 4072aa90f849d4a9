"""
User model.

Mapping of the account table owned by the login service. Only the columns
this service reads or credits are mapped.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from dedata.models.base import Base
from dedata.models.types import TokenAmountType


class User(Base):
    """User account with cumulative check-in rewards."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("total_rewards >= 0", name="check_user_total_rewards_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    # Rewards
    total_rewards: Mapped[Decimal] = mapped_column(
        TokenAmountType, nullable=False, default=Decimal("0"), comment="Cumulative reward tokens"
    )
    last_checkin_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<User(id={self.id}, total_rewards={self.total_rewards})>"
