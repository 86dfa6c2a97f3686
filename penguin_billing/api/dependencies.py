"""
FastAPI Dependencies - wiring for the store, the verifier and RTDN authentication.

The Google Play client is built once by create_subscription_verifier() during
application startup and stored on app.state; routes receive it through
get_subscription_verifier() so tests can override it.
"""

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from penguin_billing.config import Settings, get_settings
from penguin_billing.db.session import get_db
from penguin_billing.exceptions import AuthenticationError
from penguin_billing.observability.metrics import metrics
from penguin_billing.services.google_play_notifications import verify_shared_secret
from penguin_billing.services.google_play_provider import (
    GooglePlaySubscriptionClient,
    load_service_account_info,
)
from penguin_billing.services.purchase_store import PurchaseStore
from penguin_billing.services.reconciliation import ReconciliationService
from penguin_billing.services.subscription_verifier import SubscriptionVerifier

logger = get_logger(__name__)

RTDN_SECRET_HEADER = "X-RTDN-Secret"


def create_subscription_verifier(settings: Settings) -> SubscriptionVerifier:
    """Build the Google Play client from configuration."""
    return GooglePlaySubscriptionClient(
        service_account_json=load_service_account_info(settings.google_service_account_json),
        timeout_seconds=settings.verification_timeout_seconds,
    )


def get_subscription_verifier(request: Request) -> SubscriptionVerifier:
    """FastAPI dependency returning the verifier built at startup."""
    verifier: SubscriptionVerifier | None = getattr(
        request.app.state, "subscription_verifier", None
    )
    if verifier is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google Play client not configured",
        )
    return verifier


def get_purchase_store(db: AsyncSession = Depends(get_db)) -> PurchaseStore:
    """FastAPI dependency for the purchase store."""
    return PurchaseStore(db)


def get_reconciliation_service(
    store: PurchaseStore = Depends(get_purchase_store),
    verifier: SubscriptionVerifier = Depends(get_subscription_verifier),
    settings: Settings = Depends(get_settings),
) -> ReconciliationService:
    """FastAPI dependency for the reconciliation service."""
    return ReconciliationService(store=store, verifier=verifier, tier_table=settings.tier_table)


async def require_rtdn_secret(
    x_rtdn_secret: str | None = Header(None, alias=RTDN_SECRET_HEADER),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    FastAPI dependency checking the Pub/Sub push shared secret.

    The RTDN route reads its body itself, so this check runs before any payload parsing.

    Raises:
        HTTPException 401 if the header is missing or differs
    """
    try:
        verify_shared_secret(x_rtdn_secret, settings.rtdn_shared_secret)
    except AuthenticationError as exc:
        metrics.record_error("AuthenticationError", "rtdn")
        logger.warning("rtdn_unauthorized", reason=exc.message)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="unauthorized",
        ) from exc
