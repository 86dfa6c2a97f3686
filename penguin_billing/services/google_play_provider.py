"""
Google Play Provider Implementation - subscription verification.

Queries purchases.subscriptionsv2.get and normalizes the response.
"""

import asyncio
import base64
import binascii
import json
import time
from datetime import UTC, datetime, timedelta
from typing import Any

import httplib2
from google.oauth2 import service_account
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from structlog import get_logger

from penguin_billing.exceptions import VerificationError
from penguin_billing.models.domain import VerifiedSubscription
from penguin_billing.observability.metrics import metrics
from penguin_billing.services.state_mapper import map_provider_state

logger = get_logger(__name__)

ANDROID_PUBLISHER_SCOPE = "https://www.googleapis.com/auth/androidpublisher"
ACKNOWLEDGED = "ACKNOWLEDGEMENT_STATE_ACKNOWLEDGED"
UNKNOWN_PRODUCT_ID = "unknown_product"

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def load_service_account_info(value: str) -> dict[str, Any] | str:
    """
    Interpret a configured service account.

    Accepts raw JSON, base64-encoded JSON, or a path to a key file. Returns the
    parsed dict for JSON forms and the path unchanged otherwise.
    """
    stripped = value.strip()
    if stripped.startswith("{"):
        return json.loads(stripped)
    try:
        decoded = base64.b64decode(stripped, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return stripped
    if decoded.lstrip().startswith("{"):
        return json.loads(decoded)
    return stripped


def parse_expiry_time(value: object) -> int | None:
    """Parse an RFC 3339 timestamp to epoch millis. Unparseable values mean no known expiry."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return (parsed - _EPOCH) // timedelta(milliseconds=1)


def select_line_item(
    line_items: list[dict[str, Any]], expected_product_id: str | None
) -> dict[str, Any]:
    """
    Pick the line item matching expected_product_id, else the first one.

    Falling back to the first item can misattribute tier/expiry for bundled
    products whose response omits the expected product; the fallback is logged.
    """
    if expected_product_id:
        for item in line_items:
            if item.get("productId") == expected_product_id:
                return item
        logger.warning(
            "expected_product_not_in_line_items",
            expected_product_id=expected_product_id,
            line_item_products=[item.get("productId") for item in line_items],
        )
    return line_items[0]


def _auto_renew_enabled(line_item: dict[str, Any]) -> bool:
    plan = line_item.get("autoRenewingPlan")
    if not plan:
        return False
    return bool(plan.get("autoRenewEnabled", True))


def _is_trial(line_item: dict[str, Any]) -> bool:
    offer_phase = line_item.get("offerPhase") or {}
    return "freeTrial" in offer_phase


def parse_subscription_purchase(
    data: dict[str, Any], expected_product_id: str | None = None
) -> VerifiedSubscription:
    """
    Normalize a SubscriptionPurchaseV2 resource.

    Raises:
        VerificationError: If the response has no line items
    """
    line_items = data.get("lineItems") or []
    if not line_items:
        raise VerificationError(
            "no_line_items", "No line items in subscription response", retryable=False
        )

    matching = select_line_item(line_items, expected_product_id)
    offer_details = matching.get("offerDetails") or {}

    return VerifiedSubscription(
        access_state=map_provider_state(data.get("subscriptionState")),
        product_id=matching.get("productId") or expected_product_id or UNKNOWN_PRODUCT_ID,
        base_plan_id=offer_details.get("basePlanId") or None,
        expiry_epoch_ms=parse_expiry_time(matching.get("expiryTime")),
        is_trial=_is_trial(matching),
        auto_renew_enabled=_auto_renew_enabled(matching),
        acknowledged=data.get("acknowledgementState") == ACKNOWLEDGED,
        raw_payload=data,
    )


def verification_error_from_http(exc: HttpError) -> VerificationError:
    """Map a Google API HTTP error to a VerificationError."""
    status = exc.resp.status
    error_content = exc.content.decode("utf-8", errors="replace") if exc.content else str(exc)

    if status == 404:
        return VerificationError("token_not_found", "Purchase not found or invalid token", False)
    if status == 410:
        return VerificationError("token_expired", "Purchase token expired", False)
    if status in (401, 403):
        return VerificationError("authentication_failed", error_content, False)
    if status == 429 or status >= 500:
        return VerificationError("upstream_unavailable", error_content, True)
    return VerificationError("upstream_rejected", f"Google Play API error: {error_content}", False)


class GooglePlaySubscriptionClient:
    """
    Google Play subscription verification client.

    Constructed once at startup and injected; every call carries a bounded
    socket timeout and runs in a worker thread with its own HTTP object.
    """

    def __init__(
        self,
        service_account_json: str | dict[str, Any],
        timeout_seconds: float = 10.0,
    ) -> None:
        """
        Initialize Google Play client.

        Args:
            service_account_json: Path to service account JSON or dict with credentials
            timeout_seconds: Socket timeout for each verification call
        """
        self.timeout_seconds = timeout_seconds

        if isinstance(service_account_json, str):
            self.credentials = service_account.Credentials.from_service_account_file(  # type: ignore[no-untyped-call]
                service_account_json,
                scopes=[ANDROID_PUBLISHER_SCOPE],
            )
        else:
            self.credentials = service_account.Credentials.from_service_account_info(  # type: ignore[no-untyped-call]
                service_account_json,
                scopes=[ANDROID_PUBLISHER_SCOPE],
            )

        self.service = build(
            "androidpublisher", "v3", credentials=self.credentials, cache_discovery=False
        )

        logger.info("google_play_client_initialized", timeout_seconds=timeout_seconds)

    def _authorized_http(self) -> AuthorizedHttp:
        return AuthorizedHttp(self.credentials, http=httplib2.Http(timeout=self.timeout_seconds))

    async def _fetch(self, package_name: str, purchase_token: str) -> dict[str, Any]:
        request = (
            self.service.purchases()
            .subscriptionsv2()
            .get(packageName=package_name, token=purchase_token)
        )
        return await asyncio.to_thread(request.execute, http=self._authorized_http(), num_retries=0)

    async def verify_subscription(
        self,
        package_name: str,
        purchase_token: str,
        expected_product_id: str | None = None,
    ) -> VerifiedSubscription:
        """
        Verify a subscription purchase token with Google Play.

        Args:
            package_name: Android package name
            purchase_token: Store-issued purchase token
            expected_product_id: Product used to pick a line item, if known

        Returns:
            Normalized subscription state

        Raises:
            VerificationError: If verification fails
        """
        start = time.perf_counter()
        logger.info(
            "verifying_google_play_subscription",
            package_name=package_name,
            expected_product_id=expected_product_id,
            purchase_token=purchase_token,
        )

        try:
            result = await self._fetch(package_name, purchase_token)
            verified = parse_subscription_purchase(result, expected_product_id)

        except HttpError as exc:
            error = verification_error_from_http(exc)
            metrics.record_verification(error.reason, time.perf_counter() - start)
            logger.error(
                "google_play_verification_failed",
                status=exc.resp.status,
                reason=error.reason,
                error=error.message,
            )
            raise error from exc

        except VerificationError as exc:
            metrics.record_verification(exc.reason, time.perf_counter() - start)
            logger.error("google_play_verification_failed", reason=exc.reason, error=exc.message)
            raise

        except TimeoutError as exc:
            metrics.record_verification("timeout", time.perf_counter() - start)
            logger.error("google_play_verification_timeout", timeout_seconds=self.timeout_seconds)
            raise VerificationError("timeout", "Google Play did not respond in time") from exc

        except Exception as exc:
            metrics.record_verification("unexpected_error", time.perf_counter() - start)
            logger.exception("google_play_verification_unexpected_error")
            raise VerificationError("network_error", f"Verification failed: {exc}") from exc

        metrics.record_verification("verified", time.perf_counter() - start)
        logger.info(
            "google_play_subscription_verified",
            product_id=verified.product_id,
            base_plan_id=verified.base_plan_id,
            access_state=verified.access_state.value,
            expiry_epoch_ms=verified.expiry_epoch_ms,
            acknowledged=verified.acknowledged,
        )
        return verified
