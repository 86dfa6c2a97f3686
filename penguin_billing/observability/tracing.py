"""
OpenTelemetry tracing for the entitlement service.

Spans cover the HTTP request, the Google Play verification round trip, the
purchase store queries and each reconciliation step. Export is OTLP over gRPC.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode, Tracer

from penguin_billing.config import settings

# Probes and scrapes would otherwise dominate the trace volume
UNTRACED_URLS = "healthz,metrics"

TRACER_NAME = "penguin_billing.reconciliation"


def setup_tracing() -> None:
    """Install the global tracer provider. No-op unless TRACING_ENABLED."""
    if not settings.tracing_enabled:
        return

    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.service_name,
                "service.version": settings.api_version,
                "play.package_name": settings.google_play_package_name,
            }
        )
    )
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=settings.otlp_insecure)
        )
    )
    trace.set_tracer_provider(provider)


def instrument_fastapi(app: Any) -> None:
    """Trace every route except liveness and metrics."""
    if not settings.tracing_enabled:
        return

    FastAPIInstrumentor.instrument_app(app, excluded_urls=UNTRACED_URLS)


def instrument_sqlalchemy(engine: Any) -> None:
    """Trace queries issued through an AsyncEngine."""
    if not settings.tracing_enabled:
        return

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def get_tracer(name: str = TRACER_NAME) -> Tracer:
    return trace.get_tracer(name)


def set_span_error(span: Span, error: Exception) -> None:
    """Mark span as error and record exception."""
    span.set_status(Status(StatusCode.ERROR, str(error)))
    span.record_exception(error)


@contextmanager
def traced(operation: str, **attributes: Any) -> Iterator[Span]:
    """
    Run a block inside a span named after the operation.

    None-valued attributes are skipped. An exception marks the span as failed
    and is re-raised unchanged.

    Usage:
        with traced("reconcile_notification", event_type="subscription_renewed") as span:
            span.set_attribute("access_state", "ACTIVE")
    """
    with get_tracer().start_as_current_span(
        operation, record_exception=False, set_status_on_exception=False
    ) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as exc:
            set_span_error(span, exc)
            raise
