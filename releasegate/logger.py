"""Structured logging configuration using structlog.

JSON output in production, colored console output in development. Release
titles and movie ids are bound as context by the decision engine; endpoint
URLs that may embed credentials are masked before rendering.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from releasegate.config import settings

SENSITIVE_KEYS = {
    "token",
    "password",
    "api_key",
    "apikey",
    "secret",
    "authorization",
    "webhook_url",
    "reporting_url",
}


def add_log_level(_logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add log level to the event dict."""
    if method_name == "warn":
        # Structlog uses "warn", but we want "warning"
        event_dict["level"] = "warning"
    else:
        event_dict["level"] = method_name
    return event_dict


def censor_sensitive_data(
    _logger: logging.Logger, _method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask values whose key looks like a credential or a private endpoint."""

    def _censor_value(key: str, value: Any) -> Any:
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS):
            return "***"
        if isinstance(value, dict):
            return {k: _censor_value(k, v) for k, v in value.items()}
        return value

    return {key: _censor_value(key, value) for key, value in event_dict.items()}


def configure_logging(log_level: str | None = None) -> None:
    """Configure structlog on top of stdlib logging.

    Args:
        log_level: Overrides the configured level (used by the entry point and tests).
    """
    level = getattr(logging, (log_level or settings.log_level).upper())

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        censor_sensitive_data,
    ]

    if settings.is_production:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("pending_item_inserted", movie_id=42, title="Movie.2021.1080p")
    """
    return structlog.get_logger(name)
