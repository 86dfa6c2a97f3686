"""
Tests for domain models and API models.
"""

import dataclasses

import pytest
from pydantic import ValidationError

from penguin_billing.models.api import (
    EntitlementSnapshotResponse,
    NotificationAck,
    PubSubPushEnvelope,
    SubscriptionSummary,
    VerifyPurchaseRequest,
)
from penguin_billing.models.domain import (
    AccessState,
    NotificationDisposition,
    NotificationOutcome,
    Purchase,
)
from penguin_billing.services.entitlements import default_snapshot
from tests.factories import PACKAGE_NAME, make_purchase, make_verified


class TestPurchase:
    """Tests for the Purchase dataclass."""

    @pytest.mark.parametrize("field", ["purchase_token", "user_id", "package_name"])
    def test_identity_fields_required(self, field):
        with pytest.raises(ValueError, match=f"{field} cannot be empty"):
            make_purchase(**{field: ""})

    def test_immutable(self):
        purchase = make_purchase()
        with pytest.raises(dataclasses.FrozenInstanceError):
            purchase.access_state = AccessState.REVOKED  # type: ignore[misc]

    def test_from_verification(self):
        verified = make_verified(access_state=AccessState.GRACE_PERIOD, is_trial=True)

        purchase = Purchase.from_verification(
            purchase_token="token-1",
            user_id="user-1",
            package_name=PACKAGE_NAME,
            verified=verified,
        )

        assert purchase.purchase_token == "token-1"
        assert purchase.user_id == "user-1"
        assert purchase.package_name == PACKAGE_NAME
        assert purchase.product_id == verified.product_id
        assert purchase.access_state == AccessState.GRACE_PERIOD
        assert purchase.expiry_epoch_ms == verified.expiry_epoch_ms
        assert purchase.is_trial is True
        assert purchase.raw_payload == verified.raw_payload


class TestNotificationOutcome:
    """Tests for NotificationOutcome."""

    def test_reconciled_is_not_ignored(self):
        outcome = NotificationOutcome(disposition=NotificationDisposition.RECONCILED)
        assert outcome.ignored is False

    @pytest.mark.parametrize(
        "disposition",
        [
            NotificationDisposition.MISSING_PURCHASE_TOKEN,
            NotificationDisposition.UNKNOWN_PURCHASE_TOKEN,
            NotificationDisposition.TEST_NOTIFICATION,
        ],
    )
    def test_no_op_outcomes_are_ignored(self, disposition):
        assert NotificationOutcome(disposition=disposition).ignored is True


class TestApiModels:
    """Tests for request/response models."""

    def test_verify_request_accepts_camel_case(self):
        request = VerifyPurchaseRequest.model_validate(
            {
                "userId": "user-1",
                "packageName": PACKAGE_NAME,
                "productId": "plus_yearly",
                "purchaseToken": "token-1",
            }
        )

        assert request.user_id == "user-1"
        assert request.purchase_token == "token-1"

    def test_verify_request_rejects_oversized_token(self):
        with pytest.raises(ValidationError):
            VerifyPurchaseRequest(
                user_id="user-1",
                package_name=PACKAGE_NAME,
                product_id="plus_yearly",
                purchase_token="x" * 4097,
            )

    def test_snapshot_serializes_camel_case(self):
        data = EntitlementSnapshotResponse.from_domain(default_snapshot()).model_dump(
            by_alias=True, mode="json"
        )

        assert data == {
            "tier": "FREE",
            "adsEnabled": True,
            "proToolsEnabled": False,
            "capabilities": [],
            "validUntilEpochMs": None,
            "source": "LOCAL_DEFAULT",
        }

    def test_subscription_summary_omits_identity(self):
        data = SubscriptionSummary.from_domain(make_purchase()).model_dump(by_alias=True)

        assert "purchaseToken" not in data
        assert "userId" not in data
        assert data["expiryEpochMs"] == make_purchase().expiry_epoch_ms

    def test_push_envelope(self):
        envelope = PubSubPushEnvelope.model_validate(
            {"message": {"data": "e30=", "messageId": "123"}, "subscription": "sub"}
        )

        assert envelope.message.data == "e30="
        assert envelope.message.message_id == "123"

    def test_push_envelope_requires_data(self):
        with pytest.raises(ValidationError):
            PubSubPushEnvelope.model_validate({"message": {"messageId": "123"}})

    def test_ack_defaults(self):
        assert NotificationAck().model_dump(exclude_none=True) == {"ok": True}
