"""
Status API routes - liveness and dependency health.

Public endpoints (no auth).
"""

import time
from datetime import UTC, datetime
from enum import Enum

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from penguin_billing.config import settings
from penguin_billing.db.session import get_db
from penguin_billing.models.api import HealthResponse

logger = get_logger(__name__)
router = APIRouter(tags=["status"])

DEGRADED_LATENCY_THRESHOLD = 1000  # ms


class StatusLevel(str, Enum):
    """Status levels for health checks, mildest first."""

    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    OUTAGE = "outage"


_SEVERITY = {StatusLevel.OPERATIONAL: 0, StatusLevel.DEGRADED: 1, StatusLevel.OUTAGE: 2}


class ProviderStatus(BaseModel):
    """Status of a single dependency."""

    status: StatusLevel
    latency_ms: int | None = None
    last_check: str = Field(..., description="ISO 8601 timestamp")
    message: str | None = None


class ServiceStatusResponse(BaseModel):
    """Response for /v1/status endpoint."""

    service: str
    status: StatusLevel
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str
    providers: dict[str, ProviderStatus]


def _now() -> str:
    return datetime.now(UTC).isoformat()


async def check_postgresql(db: AsyncSession) -> ProviderStatus:
    """Round-trip a trivial query; slow answers count as degraded."""
    start = time.perf_counter()
    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.warning("postgresql_health_check_failed", error=str(e))
        return ProviderStatus(status=StatusLevel.OUTAGE, last_check=_now(), message="Connection failed")

    latency_ms = int((time.perf_counter() - start) * 1000)
    if latency_ms > DEGRADED_LATENCY_THRESHOLD:
        return ProviderStatus(
            status=StatusLevel.DEGRADED,
            latency_ms=latency_ms,
            last_check=_now(),
            message="High latency",
        )
    return ProviderStatus(status=StatusLevel.OPERATIONAL, latency_ms=latency_ms, last_check=_now())


def check_google_play(request: Request) -> ProviderStatus:
    """
    Report whether the Google Play client was built at startup.

    Google Play itself is not called: a status probe must not spend API quota.
    """
    if getattr(request.app.state, "subscription_verifier", None) is None:
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            last_check=_now(),
            message="Client not configured",
        )
    return ProviderStatus(status=StatusLevel.OPERATIONAL, last_check=_now())


def overall_status(providers: dict[str, ProviderStatus]) -> StatusLevel:
    """The worst dependency status wins."""
    levels = [provider.status for provider in providers.values()]
    return max(levels, key=_SEVERITY.__getitem__, default=StatusLevel.OPERATIONAL)


@router.get("/healthz", response_model=HealthResponse)
async def healthz() -> HealthResponse:
    """Liveness probe."""
    return HealthResponse(ok=True, service=settings.service_name)


@router.get("/v1/status", response_model=ServiceStatusResponse)
async def service_status(
    request: Request, db: AsyncSession = Depends(get_db)
) -> ServiceStatusResponse:
    providers = {
        "postgresql": await check_postgresql(db),
        "google_play": check_google_play(request),
    }
    return ServiceStatusResponse(
        service=settings.service_name,
        status=overall_status(providers),
        timestamp=_now(),
        version=settings.api_version,
        providers=providers,
    )
