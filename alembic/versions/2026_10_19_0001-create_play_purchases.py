"""create play purchases

Revision ID: 2026_10_19_0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates play_purchases: one row per Google Play purchase token holding the
latest verified subscription state.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "2026_10_19_0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "play_purchases",
        sa.Column("purchase_token", sa.String(length=4096), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("package_name", sa.String(length=255), nullable=False),
        sa.Column("product_id", sa.String(length=255), nullable=False),
        sa.Column("base_plan_id", sa.String(length=255), nullable=True),
        sa.Column("access_state", sa.String(length=20), nullable=False),
        sa.Column("expiry_epoch_ms", sa.BigInteger(), nullable=True),
        sa.Column("is_trial", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("auto_renew_enabled", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("acknowledged", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("raw_payload", postgresql.JSONB(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("purchase_token"),
        sa.CheckConstraint(
            "access_state IN ('ACTIVE', 'GRACE_PERIOD', 'ON_HOLD', 'PAUSED', 'EXPIRED', 'REVOKED')",
            name="ck_play_purchases_access_state",
        ),
    )

    # Indexes for lookups
    op.create_index("idx_play_purchases_user_id", "play_purchases", ["user_id"])
    op.create_index("idx_play_purchases_access_state", "play_purchases", ["access_state"])


def downgrade() -> None:
    op.drop_index("idx_play_purchases_access_state", table_name="play_purchases")
    op.drop_index("idx_play_purchases_user_id", table_name="play_purchases")
    op.drop_table("play_purchases")
