"""
Tests for the PostgreSQL purchase store.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from penguin_billing.db.models import PlayPurchase
from penguin_billing.exceptions import StorageError
from penguin_billing.models.domain import AccessState
from penguin_billing.services.purchase_store import (
    REPLACED_COLUMNS,
    PurchaseStore,
    build_upsert_statement,
)
from tests.factories import NOW_MS, PACKAGE_NAME, make_purchase


def _compile(purchase):
    return build_upsert_statement(purchase).compile(dialect=postgresql.dialect())


def _row(**overrides) -> PlayPurchase:
    values = {
        "purchase_token": "token-plus-1",
        "user_id": "user-1",
        "package_name": PACKAGE_NAME,
        "product_id": "plus_yearly",
        "base_plan_id": "yearly",
        "access_state": "ACTIVE",
        "expiry_epoch_ms": NOW_MS,
        "is_trial": False,
        "auto_renew_enabled": True,
        "acknowledged": True,
        "raw_payload": {"subscriptionState": "SUBSCRIPTION_STATE_ACTIVE"},
    }
    values.update(overrides)
    return PlayPurchase(**values)


def _db_down() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("connection refused"))


# ============================================================================
# Upsert statement
# ============================================================================


class TestBuildUpsertStatement:
    """Tests for the create-or-replace statement."""

    def test_conflicts_on_purchase_token(self):
        sql = str(_compile(make_purchase()))

        assert sql.startswith("INSERT INTO play_purchases")
        assert "ON CONFLICT (purchase_token) DO UPDATE SET" in sql

    def test_replaces_every_state_column(self):
        set_clause = str(_compile(make_purchase())).split("DO UPDATE SET")[1]

        for column in REPLACED_COLUMNS:
            assert f"{column} = excluded.{column}" in set_clause
        assert "updated_at = now()" in set_clause

    def test_keeps_created_at(self):
        set_clause = str(_compile(make_purchase())).split("DO UPDATE SET")[1]
        assert "created_at" not in set_clause

    def test_bound_values(self):
        purchase = make_purchase(
            access_state=AccessState.GRACE_PERIOD,
            expiry_epoch_ms=NOW_MS,
            raw_payload=None,
        )

        params = _compile(purchase).params

        assert params["purchase_token"] == "token-plus-1"
        assert params["user_id"] == "user-1"
        assert params["access_state"] == "GRACE_PERIOD"
        assert params["expiry_epoch_ms"] == NOW_MS
        assert params["raw_payload"] == {}

    def test_same_purchase_builds_same_statement(self):
        """Replaying a verification yields identical SQL and values."""
        first = _compile(make_purchase())
        second = _compile(make_purchase())

        assert str(first) == str(second)
        assert first.params == second.params


# ============================================================================
# Store operations
# ============================================================================


class TestPurchaseStore:
    """Tests for PurchaseStore with a mocked session."""

    @pytest.mark.asyncio
    async def test_upsert_executes_and_commits(self, db_session):
        store = PurchaseStore(db_session)

        await store.upsert(make_purchase())

        db_session.execute.assert_awaited_once()
        db_session.commit.assert_awaited_once()
        db_session.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upsert_failure_rolls_back(self, db_session):
        db_session.execute = AsyncMock(side_effect=_db_down())
        store = PurchaseStore(db_session)

        with pytest.raises(StorageError) as exc_info:
            await store.upsert(make_purchase())

        assert exc_info.value.operation == "upsert"
        db_session.rollback.assert_awaited_once()
        db_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upsert_commit_failure(self, db_session):
        db_session.commit = AsyncMock(side_effect=_db_down())
        store = PurchaseStore(db_session)

        with pytest.raises(StorageError):
            await store.upsert(make_purchase())

        db_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_get_by_token_found(self, db_session):
        result = MagicMock()
        result.scalar_one_or_none = MagicMock(return_value=_row(access_state="ON_HOLD"))
        db_session.execute = AsyncMock(return_value=result)
        store = PurchaseStore(db_session)

        purchase = await store.get_by_token("token-plus-1")

        assert purchase is not None
        assert purchase.purchase_token == "token-plus-1"
        assert purchase.access_state == AccessState.ON_HOLD
        assert purchase.raw_payload == {"subscriptionState": "SUBSCRIPTION_STATE_ACTIVE"}

    @pytest.mark.asyncio
    async def test_get_by_token_missing(self, db_session):
        store = PurchaseStore(db_session)
        assert await store.get_by_token("unknown") is None

    @pytest.mark.asyncio
    async def test_get_by_token_failure(self, db_session):
        db_session.execute = AsyncMock(side_effect=_db_down())
        store = PurchaseStore(db_session)

        with pytest.raises(StorageError) as exc_info:
            await store.get_by_token("token-plus-1")

        assert exc_info.value.operation == "get_by_token"

    @pytest.mark.asyncio
    async def test_list_by_user(self, db_session):
        rows = [
            _row(purchase_token="token-pro", product_id="pro_yearly"),
            _row(purchase_token="token-plus", access_state="EXPIRED"),
        ]
        result = MagicMock()
        result.scalars = MagicMock(return_value=MagicMock(all=MagicMock(return_value=rows)))
        db_session.execute = AsyncMock(return_value=result)
        store = PurchaseStore(db_session)

        purchases = await store.list_by_user("user-1")

        assert [p.purchase_token for p in purchases] == ["token-pro", "token-plus"]
        assert purchases[1].access_state == AccessState.EXPIRED

    @pytest.mark.asyncio
    async def test_list_by_user_orders_by_recency(self, db_session):
        store = PurchaseStore(db_session)

        await store.list_by_user("user-1")

        stmt = db_session.execute.await_args.args[0]
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "WHERE play_purchases.user_id = " in sql
        assert "ORDER BY play_purchases.updated_at DESC" in sql

    @pytest.mark.asyncio
    async def test_list_by_user_empty(self, db_session):
        store = PurchaseStore(db_session)
        assert await store.list_by_user("nobody") == []

    @pytest.mark.asyncio
    async def test_list_by_user_failure(self, db_session):
        db_session.execute = AsyncMock(side_effect=_db_down())
        store = PurchaseStore(db_session)

        with pytest.raises(StorageError) as exc_info:
            await store.list_by_user("user-1")

        assert exc_info.value.operation == "list_by_user"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            ConnectionRefusedError(111, "Connect call failed"),
            TimeoutError("connect timed out"),
            OSError("Name or service not known"),
        ],
    )
    async def test_connection_failures_become_storage_errors(self, db_session, error):
        db_session.execute = AsyncMock(side_effect=error)
        store = PurchaseStore(db_session)

        with pytest.raises(StorageError) as exc_info:
            await store.list_by_user("user-1")
        assert exc_info.value.__cause__ is error

        with pytest.raises(StorageError):
            await store.get_by_token("token-plus-1")

        with pytest.raises(StorageError):
            await store.upsert(make_purchase())
        db_session.rollback.assert_awaited_once()
