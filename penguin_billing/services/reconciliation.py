"""
Reconciliation Service - verify -> persist -> resolve.

Two triggers reach the same pipeline:
- client-initiated verification, attributed to the calling user;
- Google Play notifications, only for tokens already linked to a user.

Single attempt per call: no internal retries. When verification fails nothing
is written, so the last known-good state is preserved.
"""

import time
from collections.abc import Callable, Mapping

from structlog import get_logger

from penguin_billing.models.domain import (
    EntitlementSnapshot,
    EntitlementView,
    MonetizationTier,
    NotificationDisposition,
    NotificationOutcome,
    Purchase,
    VerificationOutcome,
)
from penguin_billing.models.google_play import GooglePlayNotification
from penguin_billing.observability.metrics import metrics
from penguin_billing.observability.tracing import traced
from penguin_billing.services.entitlements import resolve_entitlements
from penguin_billing.services.purchase_store import PurchaseStore
from penguin_billing.services.subscription_verifier import SubscriptionVerifier

logger = get_logger(__name__)


def current_epoch_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


class ReconciliationService:
    """Coordinates the verifier, the purchase store and the entitlement resolver."""

    def __init__(
        self,
        store: PurchaseStore,
        verifier: SubscriptionVerifier,
        tier_table: Mapping[str, MonetizationTier],
        clock: Callable[[], int] = current_epoch_ms,
    ) -> None:
        self.store = store
        self.verifier = verifier
        self.tier_table = tier_table
        self.clock = clock

    async def _resolve_for_user(self, user_id: str) -> tuple[list[Purchase], EntitlementSnapshot, int]:
        purchases = await self.store.list_by_user(user_id)
        now = self.clock()
        snapshot = resolve_entitlements(purchases, now, self.tier_table)
        metrics.record_resolution(snapshot.tier.value, snapshot.source.value)
        return purchases, snapshot, now

    async def verify_client_purchase(
        self,
        user_id: str,
        package_name: str,
        product_id: str,
        purchase_token: str,
    ) -> VerificationOutcome:
        """
        Verify a purchase reported by the app and attribute it to user_id.

        Returns:
            Stored purchase, the user's recomputed snapshot and server time

        Raises:
            VerificationError: If Google Play cannot confirm the token (nothing is written)
            StorageError: If the purchase store is unavailable
        """
        with traced("verify_client_purchase", product_id=product_id) as span:
            verified = await self.verifier.verify_subscription(
                package_name=package_name,
                purchase_token=purchase_token,
                expected_product_id=product_id,
            )

            purchase = Purchase.from_verification(
                purchase_token=purchase_token,
                user_id=user_id,
                package_name=package_name,
                verified=verified,
            )
            await self.store.upsert(purchase)

            _, snapshot, now = await self._resolve_for_user(user_id)
            span.set_attribute("tier", snapshot.tier.value)

        logger.info(
            "purchase_verified",
            user_id=user_id,
            product_id=purchase.product_id,
            access_state=purchase.access_state.value,
            tier=snapshot.tier.value,
            valid_until_epoch_ms=snapshot.valid_until_epoch_ms,
        )
        return VerificationOutcome(purchase=purchase, entitlements=snapshot, server_time_epoch_ms=now)

    async def process_notification(self, notification: GooglePlayNotification) -> NotificationOutcome:
        """
        Re-verify the purchase a notification refers to.

        Unknown tokens are ignored: a notification never attributes a token to a user.

        Raises:
            VerificationError: If Google Play cannot confirm a known token
            StorageError: If the purchase store is unavailable
        """
        if notification.is_test:
            return self._ignored(NotificationDisposition.TEST_NOTIFICATION, None)

        purchase_token = notification.purchase_token
        if not purchase_token:
            return self._ignored(NotificationDisposition.MISSING_PURCHASE_TOKEN, None)

        existing = await self.store.get_by_token(purchase_token)
        if existing is None:
            logger.warning(
                "rtdn_token_unknown",
                purchase_token=purchase_token,
                event_type=notification.event_type,
            )
            return self._ignored(NotificationDisposition.UNKNOWN_PURCHASE_TOKEN, purchase_token)

        with traced("reconcile_notification", event_type=notification.event_type) as span:
            verified = await self.verifier.verify_subscription(
                package_name=existing.package_name,
                purchase_token=purchase_token,
                expected_product_id=existing.product_id,
            )
            refreshed = Purchase.from_verification(
                purchase_token=purchase_token,
                user_id=existing.user_id,
                package_name=existing.package_name,
                verified=verified,
            )
            await self.store.upsert(refreshed)
            span.set_attribute("access_state", refreshed.access_state.value)

        metrics.record_notification(NotificationDisposition.RECONCILED.value)
        logger.info(
            "rtdn_reconciled",
            user_id=existing.user_id,
            event_type=notification.event_type,
            previous_state=existing.access_state.value,
            access_state=refreshed.access_state.value,
        )
        return NotificationOutcome(
            disposition=NotificationDisposition.RECONCILED,
            purchase_token=purchase_token,
            access_state=refreshed.access_state,
        )

    async def get_entitlements(self, user_id: str) -> EntitlementView:
        """
        All stored purchases for a user (unfiltered) plus the resolved snapshot.

        Raises:
            StorageError: If the purchase store is unavailable
        """
        purchases, snapshot, now = await self._resolve_for_user(user_id)
        return EntitlementView(
            entitlements=snapshot,
            purchases=tuple(purchases),
            server_time_epoch_ms=now,
        )

    def _ignored(
        self, disposition: NotificationDisposition, purchase_token: str | None
    ) -> NotificationOutcome:
        metrics.record_notification(disposition.value)
        logger.info("rtdn_ignored", reason=disposition.value)
        return NotificationOutcome(disposition=disposition, purchase_token=purchase_token)
