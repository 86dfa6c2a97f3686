"""
Tests for the entitlement resolver.
"""

from penguin_billing.models.domain import (
    AccessState,
    EntitlementSource,
    FeatureCapability,
    MonetizationTier,
)
from penguin_billing.services.entitlements import (
    PRO_CAPABILITIES,
    capabilities_for_tier,
    default_snapshot,
    is_active,
    resolve_entitlements,
    tier_for_product,
)
from tests.factories import DAY_MS, NOW_MS, TIER_TABLE, make_purchase


class TestIsActive:
    """Tests for the per-purchase activity predicate."""

    def test_active_with_future_expiry(self):
        assert is_active(make_purchase(expiry_epoch_ms=NOW_MS + 1), NOW_MS) is True

    def test_grace_period_grants_access(self):
        purchase = make_purchase(access_state=AccessState.GRACE_PERIOD)
        assert is_active(purchase, NOW_MS) is True

    def test_expiry_equal_to_now_is_not_active(self):
        """Test the strict comparison at the expiry boundary."""
        assert is_active(make_purchase(expiry_epoch_ms=NOW_MS), NOW_MS) is False

    def test_past_expiry_is_not_active(self):
        assert is_active(make_purchase(expiry_epoch_ms=NOW_MS - 1), NOW_MS) is False

    def test_unknown_expiry_is_indefinite(self):
        assert is_active(make_purchase(expiry_epoch_ms=None), NOW_MS) is True

    def test_non_grant_states(self):
        """Test that ON_HOLD, PAUSED, EXPIRED and REVOKED never grant access."""
        for state in (
            AccessState.ON_HOLD,
            AccessState.PAUSED,
            AccessState.EXPIRED,
            AccessState.REVOKED,
        ):
            purchase = make_purchase(access_state=state, expiry_epoch_ms=NOW_MS + DAY_MS)
            assert is_active(purchase, NOW_MS) is False, state


class TestTierHelpers:
    """Tests for product and capability lookups."""

    def test_mapped_products(self):
        assert tier_for_product("plus_yearly", TIER_TABLE) == MonetizationTier.PLUS
        assert tier_for_product("pro_yearly", TIER_TABLE) == MonetizationTier.PRO

    def test_unmapped_product_is_free(self):
        assert tier_for_product("legacy_monthly", TIER_TABLE) == MonetizationTier.FREE

    def test_only_pro_has_capabilities(self):
        assert capabilities_for_tier(MonetizationTier.FREE) == ()
        assert capabilities_for_tier(MonetizationTier.PLUS) == ()
        assert capabilities_for_tier(MonetizationTier.PRO) == (
            FeatureCapability.OCR_SEARCHABLE_TEXT,
            FeatureCapability.TTS_READ_ALOUD,
        )

    def test_tier_ordering(self):
        assert MonetizationTier.FREE.rank < MonetizationTier.PLUS.rank < MonetizationTier.PRO.rank


class TestResolveEntitlements:
    """Tests for resolve_entitlements."""

    def test_no_purchases_is_local_default(self):
        snapshot = resolve_entitlements([], NOW_MS, TIER_TABLE)

        assert snapshot == default_snapshot()
        assert snapshot.tier == MonetizationTier.FREE
        assert snapshot.ads_enabled is True
        assert snapshot.pro_tools_enabled is False
        assert snapshot.capabilities == ()
        assert snapshot.valid_until_epoch_ms is None
        assert snapshot.source == EntitlementSource.LOCAL_DEFAULT

    def test_active_plus(self):
        """Scenario: one active PLUS subscription."""
        expiry = NOW_MS + 30 * DAY_MS
        snapshot = resolve_entitlements(
            [make_purchase(expiry_epoch_ms=expiry)], NOW_MS, TIER_TABLE
        )

        assert snapshot.tier == MonetizationTier.PLUS
        assert snapshot.ads_enabled is False
        assert snapshot.pro_tools_enabled is False
        assert snapshot.capabilities == ()
        assert snapshot.valid_until_epoch_ms == expiry
        assert snapshot.source == EntitlementSource.BACKEND_VERIFIED

    def test_pro_outranks_plus_with_later_expiry(self):
        """Scenario: PRO wins even when PLUS lasts longer; validity comes from the PRO purchase."""
        plus = make_purchase(
            purchase_token="token-plus",
            product_id="plus_yearly",
            expiry_epoch_ms=NOW_MS + 300 * DAY_MS,
        )
        pro = make_purchase(
            purchase_token="token-pro",
            product_id="pro_yearly",
            expiry_epoch_ms=NOW_MS + 10 * DAY_MS,
        )

        snapshot = resolve_entitlements([plus, pro], NOW_MS, TIER_TABLE)

        assert snapshot.tier == MonetizationTier.PRO
        assert snapshot.pro_tools_enabled is True
        assert snapshot.ads_enabled is False
        assert snapshot.capabilities == PRO_CAPABILITIES
        assert snapshot.valid_until_epoch_ms == NOW_MS + 10 * DAY_MS

    def test_expired_pro_falls_back_to_plus(self):
        pro = make_purchase(
            purchase_token="token-pro",
            product_id="pro_yearly",
            access_state=AccessState.EXPIRED,
        )
        plus = make_purchase(purchase_token="token-plus")

        snapshot = resolve_entitlements([pro, plus], NOW_MS, TIER_TABLE)

        assert snapshot.tier == MonetizationTier.PLUS

    def test_grace_period_grants_tier(self):
        """Scenario: grace period keeps the tier with the original expiry."""
        expiry = NOW_MS + 3 * DAY_MS
        purchase = make_purchase(
            product_id="pro_yearly",
            access_state=AccessState.GRACE_PERIOD,
            expiry_epoch_ms=expiry,
        )

        snapshot = resolve_entitlements([purchase], NOW_MS, TIER_TABLE)

        assert snapshot.tier == MonetizationTier.PRO
        assert snapshot.valid_until_epoch_ms == expiry

    def test_expiry_boundary_is_strict(self):
        purchase = make_purchase(expiry_epoch_ms=NOW_MS)

        assert resolve_entitlements([purchase], NOW_MS, TIER_TABLE) == default_snapshot()
        assert resolve_entitlements([purchase], NOW_MS - 1, TIER_TABLE).tier == MonetizationTier.PLUS

    def test_only_inactive_purchases_is_local_default(self):
        purchases = [
            make_purchase(purchase_token="t1", access_state=AccessState.ON_HOLD),
            make_purchase(purchase_token="t2", access_state=AccessState.REVOKED),
            make_purchase(purchase_token="t3", expiry_epoch_ms=NOW_MS - DAY_MS),
        ]

        snapshot = resolve_entitlements(purchases, NOW_MS, TIER_TABLE)

        assert snapshot.source == EntitlementSource.LOCAL_DEFAULT

    def test_unmapped_active_product_is_backend_verified_free(self):
        """Test that an active but unmapped product resolves to FREE from the backend."""
        purchase = make_purchase(product_id="legacy_monthly", expiry_epoch_ms=NOW_MS + DAY_MS)

        snapshot = resolve_entitlements([purchase], NOW_MS, TIER_TABLE)

        assert snapshot.tier == MonetizationTier.FREE
        assert snapshot.ads_enabled is True
        assert snapshot.source == EntitlementSource.BACKEND_VERIFIED
        assert snapshot.valid_until_epoch_ms == NOW_MS + DAY_MS

    def test_valid_until_is_latest_at_winning_tier(self):
        purchases = [
            make_purchase(purchase_token="t1", expiry_epoch_ms=NOW_MS + 5 * DAY_MS),
            make_purchase(purchase_token="t2", expiry_epoch_ms=NOW_MS + 50 * DAY_MS),
            make_purchase(purchase_token="t3", expiry_epoch_ms=NOW_MS + 20 * DAY_MS),
        ]

        snapshot = resolve_entitlements(purchases, NOW_MS, TIER_TABLE)

        assert snapshot.valid_until_epoch_ms == NOW_MS + 50 * DAY_MS

    def test_valid_until_ignores_unknown_expiry(self):
        purchases = [
            make_purchase(purchase_token="t1", expiry_epoch_ms=None),
            make_purchase(purchase_token="t2", expiry_epoch_ms=NOW_MS + 7 * DAY_MS),
        ]

        snapshot = resolve_entitlements(purchases, NOW_MS, TIER_TABLE)

        assert snapshot.valid_until_epoch_ms == NOW_MS + 7 * DAY_MS

    def test_all_unknown_expiry_is_indefinite(self):
        snapshot = resolve_entitlements(
            [make_purchase(expiry_epoch_ms=None)], NOW_MS, TIER_TABLE
        )

        assert snapshot.tier == MonetizationTier.PLUS
        assert snapshot.valid_until_epoch_ms is None

    def test_order_does_not_matter(self):
        purchases = [
            make_purchase(purchase_token="t1", product_id="pro_yearly"),
            make_purchase(purchase_token="t2", expiry_epoch_ms=NOW_MS + 90 * DAY_MS),
            make_purchase(purchase_token="t3", access_state=AccessState.PAUSED),
        ]

        assert resolve_entitlements(purchases, NOW_MS, TIER_TABLE) == resolve_entitlements(
            list(reversed(purchases)), NOW_MS, TIER_TABLE
        )

    def test_accepts_any_iterable(self):
        snapshot = resolve_entitlements(iter([make_purchase()]), NOW_MS, TIER_TABLE)

        assert snapshot.tier == MonetizationTier.PLUS
