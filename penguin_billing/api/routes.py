"""
API Routes - purchase verification, entitlement queries and Google Play notifications.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import ValidationError
from structlog import get_logger

from penguin_billing.api.dependencies import get_reconciliation_service, require_rtdn_secret
from penguin_billing.exceptions import NotificationDecodeError, StorageError, VerificationError
from penguin_billing.models.api import (
    EntitlementSnapshotResponse,
    EntitlementsResponse,
    NotificationAck,
    PubSubPushEnvelope,
    PurchaseSummary,
    SubscriptionSummary,
    VerifyPurchaseRequest,
    VerifyPurchaseResponse,
)
from penguin_billing.observability import log_context, metrics
from penguin_billing.services.google_play_notifications import decode_notification
from penguin_billing.services.reconciliation import ReconciliationService

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/v1/purchases/verify",
    response_model=VerifyPurchaseResponse,
    status_code=status.HTTP_200_OK,
)
async def verify_purchase(
    request: VerifyPurchaseRequest,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> VerifyPurchaseResponse:
    """
    Verify a Google Play subscription purchase and return the user's entitlements.

    Flow:
    1. Android app completes purchase via Google Play Billing Library
    2. App calls this endpoint with the purchase token
    3. Backend verifies the token with the Google Play Developer API
    4. Backend stores the latest state for the token, attributed to userId
    5. Backend recomputes entitlements from all of the user's purchases

    Idempotent: the same token can be submitted any number of times.
    """
    with log_context(user_id=request.user_id):
        try:
            outcome = await service.verify_client_purchase(
                user_id=request.user_id,
                package_name=request.package_name,
                product_id=request.product_id,
                purchase_token=request.purchase_token,
            )

        except VerificationError as exc:
            metrics.record_error("VerificationError", "verify_purchase")
            logger.error(
                "purchase_verification_failed",
                reason=exc.reason,
                retryable=exc.retryable,
                purchase_token=request.purchase_token,
            )
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="verification_failed",
            ) from exc

        except StorageError as exc:
            metrics.record_error("StorageError", "verify_purchase")
            logger.error("purchase_storage_failed", operation=exc.operation)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="storage_unavailable",
            ) from exc

    return VerifyPurchaseResponse(
        purchase=PurchaseSummary.from_domain(outcome.purchase),
        entitlements=EntitlementSnapshotResponse.from_domain(outcome.entitlements),
        server_time_epoch_ms=outcome.server_time_epoch_ms,
    )


@router.get("/v1/entitlements", response_model=EntitlementsResponse)
async def get_entitlements(
    user_id: str = Query(..., alias="userId", min_length=1, max_length=255),
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> EntitlementsResponse:
    """
    Current entitlements for a user plus every stored purchase (not only active ones).
    """
    try:
        view = await service.get_entitlements(user_id)
    except StorageError as exc:
        metrics.record_error("StorageError", "get_entitlements")
        logger.error("entitlements_storage_failed", user_id=user_id, operation=exc.operation)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="storage_unavailable",
        ) from exc

    return EntitlementsResponse(
        entitlements=EntitlementSnapshotResponse.from_domain(view.entitlements),
        active_subscriptions=[SubscriptionSummary.from_domain(p) for p in view.purchases],
        server_time_epoch_ms=view.server_time_epoch_ms,
    )


@router.post(
    "/v1/rtdn/google-play",
    response_model=NotificationAck,
    response_model_exclude_none=True,
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_rtdn_secret)],
)
async def google_play_rtdn(
    request: Request,
    service: ReconciliationService = Depends(get_reconciliation_service),
) -> NotificationAck:
    """
    Handle Google Play Real-Time Developer Notifications (Pub/Sub push).

    The notification only signals that something changed; the purchase is
    re-verified with Google Play rather than trusting the payload. Tokens not yet
    linked to a user are acknowledged and ignored.
    """
    payload = await request.body()
    try:
        envelope = PubSubPushEnvelope.model_validate_json(payload)
    except ValidationError as exc:
        logger.warning("rtdn_invalid_envelope", errors=exc.error_count())
        raise HTTPException(
            status_code=422,
            detail="invalid_rtdn_payload",
        ) from exc

    try:
        notification = decode_notification(envelope.message.data, envelope.message.message_id)
        outcome = await service.process_notification(notification)

    except (NotificationDecodeError, VerificationError, StorageError) as exc:
        metrics.record_error(type(exc).__name__, "rtdn")
        logger.error(
            "rtdn_processing_failed",
            message_id=envelope.message.message_id,
            error=str(exc),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="rtdn_processing_failed",
        ) from exc

    if outcome.ignored:
        return NotificationAck(ok=True, ignored=outcome.disposition.value)
    return NotificationAck(ok=True)
