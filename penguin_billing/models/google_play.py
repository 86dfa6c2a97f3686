"""
Google Play domain models - Immutable dataclasses for notifications.

NO DICTIONARIES - All data uses strongly typed models.
"""

from dataclasses import dataclass
from enum import IntEnum


class SubscriptionNotificationType(IntEnum):
    """Google Play RTDN subscriptionNotification.notificationType values."""

    SUBSCRIPTION_RECOVERED = 1
    SUBSCRIPTION_RENEWED = 2
    SUBSCRIPTION_CANCELED = 3
    SUBSCRIPTION_PURCHASED = 4
    SUBSCRIPTION_ON_HOLD = 5
    SUBSCRIPTION_IN_GRACE_PERIOD = 6
    SUBSCRIPTION_RESTARTED = 7
    SUBSCRIPTION_PRICE_CHANGE_CONFIRMED = 8
    SUBSCRIPTION_DEFERRED = 9
    SUBSCRIPTION_PAUSED = 10
    SUBSCRIPTION_PAUSE_SCHEDULE_CHANGED = 11
    SUBSCRIPTION_REVOKED = 12
    SUBSCRIPTION_EXPIRED = 13
    SUBSCRIPTION_PRICE_CHANGE_UPDATED = 19
    SUBSCRIPTION_PENDING_PURCHASE_CANCELED = 20


def notification_type_name(notification_type: int | None) -> str:
    """Readable name for logging; unknown values are kept as numbers."""
    if notification_type is None:
        return "none"
    try:
        return SubscriptionNotificationType(notification_type).name.lower()
    except ValueError:
        return f"unknown_{notification_type}"


def redact_token(purchase_token: str | None) -> str | None:
    """Shorten a purchase token for logs."""
    if purchase_token is None:
        return None
    return purchase_token[:20] + "..." if len(purchase_token) > 20 else purchase_token


@dataclass(frozen=True)
class GooglePlayNotification:
    """Decoded Google Play Real-Time Developer Notification."""

    message_id: str | None
    package_name: str | None
    purchase_token: str | None
    subscription_id: str | None
    notification_type: int | None
    event_time_millis: int | None
    is_test: bool = False

    @property
    def event_type(self) -> str:
        """Readable notification type."""
        if self.is_test:
            return "test_notification"
        return notification_type_name(self.notification_type)
