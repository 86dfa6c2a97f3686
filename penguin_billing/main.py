"""
Main Application - FastAPI app, lifespan and cross-cutting middleware.
"""

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from penguin_billing.api.dependencies import create_subscription_verifier
from penguin_billing.api.routes import router
from penguin_billing.api.status_routes import router as status_router
from penguin_billing.config import settings
from penguin_billing.db.migration_runner import run_migrations
from penguin_billing.db.session import close_engines
from penguin_billing.observability import get_logger, log_context, metrics, setup_logging, setup_tracing
from penguin_billing.observability.tracing import instrument_fastapi

REQUEST_ID_HEADER = "X-Request-ID"

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup: apply migrations, then build the Google Play client once.

    A verifier already present on app.state (tests, embedding) is kept.
    """
    logger.info(
        "application_starting",
        version=settings.api_version,
        package_name=settings.google_play_package_name,
        migrations=settings.run_migrations_on_startup,
        tracing_enabled=settings.tracing_enabled,
    )

    if settings.run_migrations_on_startup:
        # Alembic is synchronous
        await asyncio.to_thread(run_migrations)

    if getattr(app.state, "subscription_verifier", None) is None:
        app.state.subscription_verifier = create_subscription_verifier(settings)

    logger.info("application_started", port=settings.api_port)
    try:
        yield
    finally:
        await close_engines()
        logger.info("application_stopped")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)

setup_tracing()
instrument_fastapi(app)


def _sanitize_errors(errors: Any) -> list[dict[str, Any]]:
    """Keep the JSON-safe parts of pydantic error entries."""
    sanitized = []
    for error in errors:
        entry = {key: error.get(key) for key in ("type", "loc", "msg", "input")}
        if "ctx" in error:
            entry["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        sanitized.append(entry)
    return sanitized


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = _sanitize_errors(exc.errors())
    logger.warning("request_validation_failed", path=request.url.path, errors=errors)
    return JSONResponse(status_code=422, content={"detail": errors})


@app.middleware("http")
async def request_context_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag every log line with a request ID and record HTTP metrics."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
    path = request.url.path
    method = request.method
    start = time.perf_counter()

    in_progress = metrics.http_requests_in_progress.labels(endpoint=path, method=method)
    in_progress.inc()
    with log_context(request_id=request_id):
        try:
            response = await call_next(request)
        except Exception as exc:
            metrics.record_http_request(path, method, 500, time.perf_counter() - start)
            metrics.record_error(type(exc).__name__, "http_request")
            logger.exception("request_failed", method=method, path=path)
            raise
        finally:
            in_progress.dec()

        duration = time.perf_counter() - start
        metrics.record_http_request(path, method, response.status_code, duration)
        logger.info(
            "request_completed",
            method=method,
            path=path,
            status_code=response.status_code,
            duration_seconds=round(duration, 4),
        )

    response.headers[REQUEST_ID_HEADER] = request_id
    return response


app.include_router(status_router)
app.include_router(router)


@app.get("/metrics", include_in_schema=False)
async def metrics_endpoint() -> Response:
    """Prometheus scrape endpoint; 404 when METRICS_ENABLED is false."""
    if not settings.metrics_enabled:
        return Response(status_code=404)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "penguin_billing.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
