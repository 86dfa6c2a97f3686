"""
Google Play Real-Time Developer Notifications - authentication and decoding.

Pub/Sub push delivers {"message": {"data": <base64 JSON>, "messageId": ...}}.
Only subscriptionNotification carries a token this service reconciles.
"""

import base64
import binascii
import json
import secrets

from structlog import get_logger

from penguin_billing.exceptions import AuthenticationError, NotificationDecodeError
from penguin_billing.models.google_play import GooglePlayNotification

logger = get_logger(__name__)


def verify_shared_secret(provided: str | None, expected: str) -> None:
    """
    Check the push shared secret for exact equality.

    Raises:
        AuthenticationError: If the secret is missing or different
    """
    if not provided or not expected:
        raise AuthenticationError("missing shared secret")
    if not secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise AuthenticationError("shared secret mismatch")


def _optional_int(value: object) -> int | None:
    if value is None:
        return None
    try:
        return int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return None


def decode_notification(data: str, message_id: str | None = None) -> GooglePlayNotification:
    """
    Decode the base64 JSON payload of a Pub/Sub message.

    Args:
        data: message.data from the push envelope
        message_id: message.messageId, if present

    Returns:
        Decoded notification; purchase_token is None when the payload has none

    Raises:
        NotificationDecodeError: If data is not base64-encoded JSON object
    """
    try:
        decoded = base64.b64decode(data, validate=True).decode("utf-8")
        payload = json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.error("rtdn_payload_undecodable", message_id=message_id, error=str(exc))
        raise NotificationDecodeError(f"Invalid notification data: {exc}") from exc

    if not isinstance(payload, dict):
        raise NotificationDecodeError("Notification data is not a JSON object")

    subscription = payload.get("subscriptionNotification")
    if not isinstance(subscription, dict):
        subscription = {}

    notification = GooglePlayNotification(
        message_id=message_id,
        package_name=payload.get("packageName"),
        purchase_token=subscription.get("purchaseToken") or None,
        subscription_id=subscription.get("subscriptionId"),
        notification_type=_optional_int(subscription.get("notificationType")),
        event_time_millis=_optional_int(payload.get("eventTimeMillis")),
        is_test="testNotification" in payload,
    )

    logger.info(
        "rtdn_decoded",
        message_id=message_id,
        package_name=notification.package_name,
        event_type=notification.event_type,
        has_purchase_token=notification.purchase_token is not None,
    )
    return notification
