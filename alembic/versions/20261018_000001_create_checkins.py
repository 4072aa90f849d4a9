"""Create checkins table and check-in reward columns on users.

Revision ID: 20261018_000001_create_checkins
Revises:
Create Date: 2026-10-18

The users table belongs to the login service; this revision only adds
the columns the settlement worker credits.
"""

from typing import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261018_000001_create_checkins"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ACTIVE_STATUS_SQL = "status IN ('issuing', 'payment_success', 'pending_payment')"


def upgrade() -> None:
    """Create checkins table, add reward columns to users."""
    op.create_table(
        "checkins",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column(
            "status",
            sa.String(length=32),
            nullable=False,
            comment="pending_payment, payment_failed, payment_success, issuing, success, issue_failed",
        ),
        sa.Column("order_id", sa.String(length=128), nullable=True, comment="Gateway order id"),
        sa.Column("payment_address", sa.String(length=256), nullable=True),
        sa.Column(
            "price_amount",
            sa.String(length=64),
            nullable=True,
            comment="Price as returned by the gateway",
        ),
        sa.Column("blockchain_name", sa.String(length=64), nullable=True),
        sa.Column("token_symbol", sa.String(length=32), nullable=True),
        sa.Column("payment_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "payment_tx_hash",
            sa.String(length=256),
            nullable=True,
            comment="Payer transaction hash (informational)",
        ),
        sa.Column(
            "token_amount",
            sa.DECIMAL(precision=36, scale=18),
            nullable=True,
            comment="Reward tokens delivered",
        ),
        sa.Column(
            "issue_tx_hash",
            sa.String(length=128),
            nullable=True,
            comment="Current issuance transaction hash",
        ),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id"),
    )

    # Create indexes for worker and history queries
    op.create_index("ix_checkins_user_id", "checkins", ["user_id"])
    op.create_index("ix_checkins_status", "checkins", ["status"])
    op.create_index("ix_checkins_created_at", "checkins", ["created_at"])
    op.create_index("ix_checkins_user_status", "checkins", ["user_id", "status"])

    # At most one active pipeline per user
    op.create_index(
        "uq_checkins_user_active",
        "checkins",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_STATUS_SQL),
    )

    op.add_column(
        "users",
        sa.Column(
            "total_rewards",
            sa.DECIMAL(precision=36, scale=18),
            nullable=False,
            server_default="0",
            comment="Cumulative reward tokens",
        ),
    )
    op.add_column(
        "users",
        sa.Column("last_checkin_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_users_last_checkin_at", "users", ["last_checkin_at"])
    op.create_check_constraint(
        "check_user_total_rewards_non_negative",
        "users",
        "total_rewards >= 0",
    )


def downgrade() -> None:
    """Drop checkins table and the reward columns."""
    op.drop_constraint("check_user_total_rewards_non_negative", "users", type_="check")
    op.drop_index("ix_users_last_checkin_at", table_name="users")
    op.drop_column("users", "last_checkin_at")
    op.drop_column("users", "total_rewards")

    op.drop_index("uq_checkins_user_active", table_name="checkins")
    op.drop_index("ix_checkins_user_status", table_name="checkins")
    op.drop_index("ix_checkins_created_at", table_name="checkins")
    op.drop_index("ix_checkins_status", table_name="checkins")
    op.drop_index("ix_checkins_user_id", table_name="checkins")
    op.drop_table("checkins")
