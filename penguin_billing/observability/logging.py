"""
structlog configuration for the entitlement service.

One JSON object per line on stdout. Every entry carries the service name and
version; purchase tokens are shortened before rendering, wherever they appear.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from penguin_billing.config import settings
from penguin_billing.models.google_play import redact_token

# Event keys whose values are purchase tokens
TOKEN_KEYS = frozenset({"purchase_token", "token"})


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.api_version
    return event_dict


def redact_purchase_tokens(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Shorten purchase tokens so full tokens never reach log storage."""
    for key in TOKEN_KEYS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str):
            event_dict[key] = redact_token(value)
    return event_dict


def _renderer(log_format: str) -> Processor:
    if log_format == "console":
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer()


def setup_logging() -> None:
    """
    Configure structlog on top of the standard library logger.

    Example entry:
    {
        "event": "purchase_verified",
        "level": "info",
        "timestamp": "2026-10-19T12:00:00.123456Z",
        "logger": "penguin_billing.services.reconciliation",
        "service": "penguin-billing-backend",
        "version": "0.1.0",
        "user_id": "user-123",
        "tier": "PRO"
    }
    """
    level = logging.getLevelName(settings.log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        redact_purchase_tokens,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _renderer(settings.log_format),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Bind key/value pairs to every log entry emitted inside the block.

    Usage:
        with log_context(user_id="user-456"):
            logger.info("verifying_purchase")
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())
