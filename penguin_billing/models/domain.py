"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
The only exception is raw_payload, which is the provider's response kept verbatim for audit.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class AccessState(str, Enum):
    """Internal subscription access state."""

    ACTIVE = "ACTIVE"
    GRACE_PERIOD = "GRACE_PERIOD"
    ON_HOLD = "ON_HOLD"
    PAUSED = "PAUSED"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


class MonetizationTier(str, Enum):
    """Monetization tier, ordered FREE < PLUS < PRO."""

    FREE = "FREE"
    PLUS = "PLUS"
    PRO = "PRO"

    @property
    def rank(self) -> int:
        """Position in the tier ordering."""
        return _TIER_RANK[self]


_TIER_RANK = {
    MonetizationTier.FREE: 0,
    MonetizationTier.PLUS: 1,
    MonetizationTier.PRO: 2,
}


class EntitlementSource(str, Enum):
    """Where an entitlement snapshot came from."""

    LOCAL_DEFAULT = "LOCAL_DEFAULT"
    BACKEND_VERIFIED = "BACKEND_VERIFIED"


class FeatureCapability(str, Enum):
    """Feature flags unlocked at the PRO tier."""

    OCR_SEARCHABLE_TEXT = "OCR_SEARCHABLE_TEXT"
    TTS_READ_ALOUD = "TTS_READ_ALOUD"


@dataclass(frozen=True)
class VerifiedSubscription:
    """Normalized subscription state reported by the billing authority."""

    access_state: AccessState
    product_id: str
    base_plan_id: str | None
    expiry_epoch_ms: int | None
    is_trial: bool
    auto_renew_enabled: bool
    acknowledged: bool
    raw_payload: dict[str, Any]


@dataclass(frozen=True)
class Purchase:
    """Current state of one purchase token, as stored."""

    purchase_token: str
    user_id: str
    package_name: str
    product_id: str
    base_plan_id: str | None
    access_state: AccessState
    expiry_epoch_ms: int | None
    is_trial: bool
    auto_renew_enabled: bool
    acknowledged: bool
    raw_payload: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        """Validate identity fields."""
        if not self.purchase_token:
            raise ValueError("purchase_token cannot be empty")
        if not self.user_id:
            raise ValueError("user_id cannot be empty")
        if not self.package_name:
            raise ValueError("package_name cannot be empty")

    @classmethod
    def from_verification(
        cls,
        purchase_token: str,
        user_id: str,
        package_name: str,
        verified: VerifiedSubscription,
    ) -> "Purchase":
        """Attribute a verification result to a user."""
        return cls(
            purchase_token=purchase_token,
            user_id=user_id,
            package_name=package_name,
            product_id=verified.product_id,
            base_plan_id=verified.base_plan_id,
            access_state=verified.access_state,
            expiry_epoch_ms=verified.expiry_epoch_ms,
            is_trial=verified.is_trial,
            auto_renew_enabled=verified.auto_renew_enabled,
            acknowledged=verified.acknowledged,
            raw_payload=verified.raw_payload,
        )


@dataclass(frozen=True)
class EntitlementSnapshot:
    """Point-in-time entitlement decision. Derived, never persisted."""

    tier: MonetizationTier
    ads_enabled: bool
    pro_tools_enabled: bool
    capabilities: tuple[FeatureCapability, ...]
    valid_until_epoch_ms: int | None
    source: EntitlementSource


@dataclass(frozen=True)
class VerificationOutcome:
    """Result of a client-initiated verification."""

    purchase: Purchase
    entitlements: EntitlementSnapshot
    server_time_epoch_ms: int


@dataclass(frozen=True)
class EntitlementView:
    """A user's stored purchases together with the resolved snapshot."""

    entitlements: EntitlementSnapshot
    purchases: tuple[Purchase, ...]
    server_time_epoch_ms: int


class NotificationDisposition(str, Enum):
    """What happened to an inbound provider notification."""

    RECONCILED = "reconciled"
    MISSING_PURCHASE_TOKEN = "missing_purchase_token"
    UNKNOWN_PURCHASE_TOKEN = "unknown_purchase_token"
    TEST_NOTIFICATION = "test_notification"


@dataclass(frozen=True)
class NotificationOutcome:
    """Result of notification-initiated reconciliation."""

    disposition: NotificationDisposition
    purchase_token: str | None = None
    access_state: AccessState | None = None

    @property
    def ignored(self) -> bool:
        """True for no-op outcomes (not errors)."""
        return self.disposition != NotificationDisposition.RECONCILED
