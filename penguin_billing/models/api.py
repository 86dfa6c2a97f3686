"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
Wire field names are camelCase; Python attributes are snake_case.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from penguin_billing.models.domain import (
    AccessState,
    EntitlementSnapshot,
    EntitlementSource,
    FeatureCapability,
    MonetizationTier,
    Purchase,
)


class CamelModel(BaseModel):
    """Base model serialized with camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Entitlement Models
# ============================================================================


class EntitlementSnapshotResponse(CamelModel):
    """Resolved entitlements for a user."""

    tier: MonetizationTier
    ads_enabled: bool
    pro_tools_enabled: bool
    capabilities: list[FeatureCapability]
    valid_until_epoch_ms: int | None
    source: EntitlementSource

    @classmethod
    def from_domain(cls, snapshot: EntitlementSnapshot) -> "EntitlementSnapshotResponse":
        return cls(
            tier=snapshot.tier,
            ads_enabled=snapshot.ads_enabled,
            pro_tools_enabled=snapshot.pro_tools_enabled,
            capabilities=list(snapshot.capabilities),
            valid_until_epoch_ms=snapshot.valid_until_epoch_ms,
            source=snapshot.source,
        )


class SubscriptionSummary(CamelModel):
    """One stored purchase as listed by GET /v1/entitlements."""

    product_id: str
    base_plan_id: str | None
    access_state: AccessState
    expiry_epoch_ms: int | None
    is_trial: bool
    auto_renew_enabled: bool

    @classmethod
    def from_domain(cls, purchase: Purchase) -> "SubscriptionSummary":
        return cls(
            product_id=purchase.product_id,
            base_plan_id=purchase.base_plan_id,
            access_state=purchase.access_state,
            expiry_epoch_ms=purchase.expiry_epoch_ms,
            is_trial=purchase.is_trial,
            auto_renew_enabled=purchase.auto_renew_enabled,
        )


class EntitlementsResponse(CamelModel):
    """GET /v1/entitlements response."""

    entitlements: EntitlementSnapshotResponse
    active_subscriptions: list[SubscriptionSummary]
    server_time_epoch_ms: int


# ============================================================================
# Purchase Verification Models
# ============================================================================


class VerifyPurchaseRequest(CamelModel):
    """POST /v1/purchases/verify request body."""

    user_id: str = Field(..., min_length=1, max_length=255)
    package_name: str = Field(..., min_length=1, max_length=255)
    product_id: str = Field(..., min_length=1, max_length=255)
    purchase_token: str = Field(..., min_length=1, max_length=4096)


class PurchaseSummary(CamelModel):
    """The purchase recorded by a verification."""

    product_id: str
    purchase_token: str
    base_plan_id: str | None
    acknowledged: bool
    auto_renew_enabled: bool

    @classmethod
    def from_domain(cls, purchase: Purchase) -> "PurchaseSummary":
        return cls(
            product_id=purchase.product_id,
            purchase_token=purchase.purchase_token,
            base_plan_id=purchase.base_plan_id,
            acknowledged=purchase.acknowledged,
            auto_renew_enabled=purchase.auto_renew_enabled,
        )


class VerifyPurchaseResponse(CamelModel):
    """POST /v1/purchases/verify response."""

    purchase: PurchaseSummary
    entitlements: EntitlementSnapshotResponse
    server_time_epoch_ms: int


# ============================================================================
# Notification Models (Pub/Sub push)
# ============================================================================


class PubSubMessage(CamelModel):
    """Pub/Sub message carrying a base64-encoded notification."""

    data: str
    message_id: str | None = None


class PubSubPushEnvelope(BaseModel):
    """POST /v1/rtdn/google-play request body."""

    message: PubSubMessage
    subscription: str | None = None


class NotificationAck(BaseModel):
    """POST /v1/rtdn/google-play response."""

    ok: bool = True
    ignored: str | None = None


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(BaseModel):
    """GET /healthz response."""

    ok: bool
    service: str
