"""
Structured Logging with Structlog.

Provides JSON-formatted logs with correlation IDs and context.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from pixtokens.config import settings


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application-level context to all log entries."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.api_version
    return event_dict


def mask_email(email: str | None) -> str:
    """Mask an email for logs: pr***@exa***.com"""
    value = (email or "").strip().lower()
    if "@" not in value:
        return "***@***"
    local, domain = value.split("@", 1)
    masked_local = f"{local[:2]}***" if len(local) >= 2 else "***"
    if "." in domain:
        name, tld = domain.rsplit(".", 1)
        return f"{masked_local}@{name[:3]}***.{tld}"
    return f"{masked_local}@{domain[:3]}***"


def mask_email_fields(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Purchaser emails never reach the log sink in clear text."""
    for key, value in event_dict.items():
        if key.endswith("email") and isinstance(value, str):
            event_dict[key] = mask_email(value)
    return event_dict


def setup_logging() -> None:
    """
    Configure structured logging with structlog.

    Logs are formatted as JSON for machine parsing with the following structure:
    {
        "event": "purchase_insert",
        "level": "info",
        "timestamp": "2025-01-08T12:00:00.123456Z",
        "logger": "pixtokens.services.purchases",
        "service": "pix-token-purchases",
        "version": "0.1.0",
        "trace_id": "1a2b3c4d",
        ...additional context
    }
    """
    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )

    # Processors for structlog
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        mask_email_fields,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    # Add exception info
    if settings.log_level.upper() == "DEBUG":
        processors.append(structlog.processors.ExceptionRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)

    # Choose renderer based on format
    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("purchase_insert", purchase_id=purchase_id, plan_id="vip")
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Context manager for adding structured logging context.

    Usage:
        with log_context(trace_id="1a2b3c4d", operation="create_token_purchase"):
            logger.info("request_received")
            # All logs within this context will include trace_id and operation
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        """Enter context - bind context variables."""
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit context - clear context variables."""
        structlog.contextvars.unbind_contextvars(*self.context.keys())
