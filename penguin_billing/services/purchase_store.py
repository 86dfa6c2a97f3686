"""
Purchase Store - idempotent persistence of one row per purchase token.

Concurrent upserts for the same token are serialized by PostgreSQL's
INSERT ... ON CONFLICT; no application-level locking.
"""

import time

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import Insert, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from penguin_billing.db.models import PlayPurchase
from penguin_billing.exceptions import StorageError
from penguin_billing.models.domain import Purchase
from penguin_billing.observability.metrics import metrics

logger = get_logger(__name__)

# Every column the upsert replaces on conflict. created_at is kept; updated_at is reset.
REPLACED_COLUMNS = (
    "user_id",
    "package_name",
    "product_id",
    "base_plan_id",
    "access_state",
    "expiry_epoch_ms",
    "is_trial",
    "auto_renew_enabled",
    "acknowledged",
    "raw_payload",
)

# asyncpg connect failures (refused, DNS, timeout) surface as OSError, not SQLAlchemyError
STORAGE_ERRORS = (SQLAlchemyError, OSError)


def build_upsert_statement(purchase: Purchase) -> Insert:
    """Build the create-or-replace statement for one purchase."""
    stmt = insert(PlayPurchase).values(
        purchase_token=purchase.purchase_token,
        user_id=purchase.user_id,
        package_name=purchase.package_name,
        product_id=purchase.product_id,
        base_plan_id=purchase.base_plan_id,
        access_state=purchase.access_state.value,
        expiry_epoch_ms=purchase.expiry_epoch_ms,
        is_trial=purchase.is_trial,
        auto_renew_enabled=purchase.auto_renew_enabled,
        acknowledged=purchase.acknowledged,
        raw_payload=purchase.raw_payload or {},
        updated_at=func.now(),
    )
    replaced = {column: stmt.excluded[column] for column in REPLACED_COLUMNS}
    replaced["updated_at"] = func.now()
    return stmt.on_conflict_do_update(
        index_elements=[PlayPurchase.purchase_token],
        set_=replaced,
    )


class PurchaseStore:
    """Async store for Google Play purchases."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize purchase store with database session."""
        self.session = session

    async def upsert(self, purchase: Purchase) -> None:
        """
        Create or fully replace the row for purchase.purchase_token.

        Never fails because the token already exists.

        Raises:
            StorageError: If the database is unavailable
        """
        start = time.perf_counter()
        try:
            await self.session.execute(build_upsert_statement(purchase))
            await self.session.commit()
        except STORAGE_ERRORS as exc:
            await self.session.rollback()
            metrics.record_store_operation("upsert", False, time.perf_counter() - start)
            logger.error(
                "purchase_upsert_failed",
                purchase_token=purchase.purchase_token,
                error=str(exc),
            )
            raise StorageError("upsert", str(exc)) from exc

        metrics.record_store_operation("upsert", True, time.perf_counter() - start)
        logger.info(
            "purchase_upserted",
            purchase_token=purchase.purchase_token,
            user_id=purchase.user_id,
            product_id=purchase.product_id,
            access_state=purchase.access_state.value,
        )

    async def get_by_token(self, purchase_token: str) -> Purchase | None:
        """
        Get the stored purchase for a token.

        Raises:
            StorageError: If the database is unavailable
        """
        start = time.perf_counter()
        stmt = select(PlayPurchase).where(PlayPurchase.purchase_token == purchase_token)
        try:
            result = await self.session.execute(stmt)
            row = result.scalar_one_or_none()
        except STORAGE_ERRORS as exc:
            metrics.record_store_operation("get_by_token", False, time.perf_counter() - start)
            logger.error("purchase_lookup_failed", error=str(exc))
            raise StorageError("get_by_token", str(exc)) from exc

        metrics.record_store_operation("get_by_token", True, time.perf_counter() - start)
        return row.to_domain() if row is not None else None

    async def list_by_user(self, user_id: str) -> list[Purchase]:
        """
        List all purchases attributed to a user, most recently updated first.

        Raises:
            StorageError: If the database is unavailable
        """
        start = time.perf_counter()
        stmt = (
            select(PlayPurchase)
            .where(PlayPurchase.user_id == user_id)
            .order_by(PlayPurchase.updated_at.desc())
        )
        try:
            result = await self.session.execute(stmt)
            rows = result.scalars().all()
        except STORAGE_ERRORS as exc:
            metrics.record_store_operation("list_by_user", False, time.perf_counter() - start)
            logger.error("purchase_list_failed", user_id=user_id, error=str(exc))
            raise StorageError("list_by_user", str(exc)) from exc

        metrics.record_store_operation("list_by_user", True, time.perf_counter() - start)
        return [row.to_domain() for row in rows]
