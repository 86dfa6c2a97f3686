"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Index, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from penguin_billing.models.domain import AccessState, Purchase


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


ACCESS_STATE_VALUES = ", ".join(f"'{state.value}'" for state in AccessState)


class PlayPurchase(Base):
    """
    ORM model for play_purchases table.

    One row per Google Play purchase token holding only its latest known state.
    """

    __tablename__ = "play_purchases"

    # Google Play tokens can be up to 4KB
    purchase_token: Mapped[str] = mapped_column(String(4096), primary_key=True)

    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    package_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    base_plan_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Subscription state
    access_state: Mapped[str] = mapped_column(String(20), nullable=False)
    expiry_epoch_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    is_trial: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_renew_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    acknowledged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Last-seen verification response (audit only)
    raw_payload: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
        onupdate=utc_now,
    )

    __table_args__ = (
        CheckConstraint(f"access_state IN ({ACCESS_STATE_VALUES})", name="ck_play_purchases_access_state"),
        Index("idx_play_purchases_user_id", "user_id"),
        Index("idx_play_purchases_access_state", "access_state"),
    )

    def to_domain(self) -> Purchase:
        """Convert ORM row to the immutable domain model."""
        return Purchase(
            purchase_token=self.purchase_token,
            user_id=self.user_id,
            package_name=self.package_name,
            product_id=self.product_id,
            base_plan_id=self.base_plan_id or None,
            access_state=AccessState(self.access_state),
            expiry_epoch_ms=self.expiry_epoch_ms,
            is_trial=self.is_trial,
            auto_renew_enabled=self.auto_renew_enabled,
            acknowledged=self.acknowledged,
            raw_payload=self.raw_payload,
        )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<PlayPurchase(user_id={self.user_id}, product_id={self.product_id}, "
            f"access_state={self.access_state})>"
        )
