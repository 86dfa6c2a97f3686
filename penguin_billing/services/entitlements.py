"""
Entitlement Resolver - derives an EntitlementSnapshot from a user's purchases.

Pure and deterministic: no I/O, no clock. Callers pass `now_epoch_ms` and the
product -> tier table.
"""

from collections.abc import Iterable, Mapping

from penguin_billing.models.domain import (
    AccessState,
    EntitlementSnapshot,
    EntitlementSource,
    FeatureCapability,
    MonetizationTier,
    Purchase,
)

ACTIVE_STATES = frozenset({AccessState.ACTIVE, AccessState.GRACE_PERIOD})

PRO_CAPABILITIES: tuple[FeatureCapability, ...] = (
    FeatureCapability.OCR_SEARCHABLE_TEXT,
    FeatureCapability.TTS_READ_ALOUD,
)


def is_active(purchase: Purchase, now_epoch_ms: int) -> bool:
    """A purchase grants access iff its state is active and it has not expired (strict >)."""
    if purchase.access_state not in ACTIVE_STATES:
        return False
    return purchase.expiry_epoch_ms is None or purchase.expiry_epoch_ms > now_epoch_ms


def tier_for_product(product_id: str, tier_table: Mapping[str, MonetizationTier]) -> MonetizationTier:
    """Unmapped products resolve to FREE."""
    return tier_table.get(product_id, MonetizationTier.FREE)


def capabilities_for_tier(tier: MonetizationTier) -> tuple[FeatureCapability, ...]:
    if tier != MonetizationTier.PRO:
        return ()
    return PRO_CAPABILITIES


def default_snapshot() -> EntitlementSnapshot:
    """Snapshot for a user with no active purchase."""
    return EntitlementSnapshot(
        tier=MonetizationTier.FREE,
        ads_enabled=True,
        pro_tools_enabled=False,
        capabilities=capabilities_for_tier(MonetizationTier.FREE),
        valid_until_epoch_ms=None,
        source=EntitlementSource.LOCAL_DEFAULT,
    )


def resolve_entitlements(
    purchases: Iterable[Purchase],
    now_epoch_ms: int,
    tier_table: Mapping[str, MonetizationTier],
) -> EntitlementSnapshot:
    """
    Resolve the entitlement snapshot for a set of purchases.

    The highest mapped tier among active purchases wins regardless of count or
    recency. Validity is the latest known expiry among active purchases at the
    winning tier; None means indefinite.

    Args:
        purchases: All stored purchases for one user
        now_epoch_ms: Current time in epoch milliseconds
        tier_table: Product ID -> tier configuration

    Returns:
        Entitlement snapshot
    """
    active = [purchase for purchase in purchases if is_active(purchase, now_epoch_ms)]
    if not active:
        return default_snapshot()

    tiers = [(purchase, tier_for_product(purchase.product_id, tier_table)) for purchase in active]
    tier = max((t for _, t in tiers), key=lambda t: t.rank)

    expiries = [
        purchase.expiry_epoch_ms
        for purchase, purchase_tier in tiers
        if purchase_tier == tier and purchase.expiry_epoch_ms is not None
    ]
    valid_until = max(expiries) if expiries else None

    return EntitlementSnapshot(
        tier=tier,
        ads_enabled=tier == MonetizationTier.FREE,
        pro_tools_enabled=tier == MonetizationTier.PRO,
        capabilities=capabilities_for_tier(tier),
        valid_until_epoch_ms=valid_until,
        source=EntitlementSource.BACKEND_VERIFIED,
    )
