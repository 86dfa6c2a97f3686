"""
Google Play subscription state -> internal AccessState.
"""

from penguin_billing.models.domain import AccessState

# Absence of a known-good state must never grant access.
DEFAULT_ACCESS_STATE = AccessState.REVOKED

# Canceled keeps trailing access until expiry; that is tracked by expiry and
# auto-renew, not by state.
PROVIDER_STATE_MAP: dict[str, AccessState] = {
    "SUBSCRIPTION_STATE_ACTIVE": AccessState.ACTIVE,
    "SUBSCRIPTION_STATE_IN_GRACE_PERIOD": AccessState.GRACE_PERIOD,
    "SUBSCRIPTION_STATE_ON_HOLD": AccessState.ON_HOLD,
    "SUBSCRIPTION_STATE_PAUSED": AccessState.PAUSED,
    "SUBSCRIPTION_STATE_EXPIRED": AccessState.EXPIRED,
    "SUBSCRIPTION_STATE_CANCELED": AccessState.EXPIRED,
}


def map_provider_state(provider_status: str | None) -> AccessState:
    """Map a provider subscriptionState to an AccessState, failing closed."""
    if provider_status is None:
        return DEFAULT_ACCESS_STATE
    return PROVIDER_STATE_MAP.get(provider_status, DEFAULT_ACCESS_STATE)
