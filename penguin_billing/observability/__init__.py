"""
structlog logging, Prometheus metrics and OpenTelemetry tracing for the service.
"""

from penguin_billing.observability.logging import get_logger, log_context, setup_logging
from penguin_billing.observability.metrics import metrics
from penguin_billing.observability.tracing import setup_tracing, traced

__all__ = [
    "get_logger",
    "log_context",
    "metrics",
    "setup_logging",
    "setup_tracing",
    "traced",
]
