"""
Structured Logging with Structlog.

Every line is one JSON object. Request handlers bind request_id and
user_id; reconciliation binds generation_id, so a single job can be
followed from dispatch to its terminal state.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from timeless.config import settings

# Story prompts and provider error bodies can run to many kilobytes
MAX_FIELD_CHARS = 500
CLIPPED_FIELDS = frozenset({"prompt", "error", "reason", "body"})

# Never written to a log line, whoever binds them
REDACTED_FIELDS = frozenset({"authorization", "api_key", "token", "access_token"})

# httpx logs every provider URL at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp service name and version on every entry."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.api_version
    return event_dict


def clip_long_fields(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Cut prompt and error text down to MAX_FIELD_CHARS."""
    for key in CLIPPED_FIELDS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str) and len(value) > MAX_FIELD_CHARS:
            event_dict[key] = f"{value[:MAX_FIELD_CHARS]}... [{len(value)} chars]"
    return event_dict


def redact_credentials(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    for key in REDACTED_FIELDS.intersection(event_dict):
        event_dict[key] = "[redacted]"
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog over the stdlib logging module.

    A reconciled failure renders as:
    {
        "event": "generation_failed",
        "level": "info",
        "timestamp": "2026-10-18T12:00:00.123456Z",
        "logger": "timeless.services.reconciliation",
        "service": "timeless-generation-gateway",
        "version": "0.1.0",
        "generation_id": "6f1c...",
        "reason": "Generation timed out after 20 minutes",
        "credits_refunded": 15
    }
    """
    level = getattr(logging, settings.log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        redact_credentials,
        clip_long_fields,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

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
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Bind fields to every log line emitted inside the block.

    Usage:
        with log_context(generation_id=str(generation.id)):
            await service.reconcile(generation)
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())
