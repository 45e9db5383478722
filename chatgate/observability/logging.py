"""
Structured Logging with Structlog.

Every entry is a JSON event with the service name, the bound request context
(user_id, chat_id, app_user_id, ...) and credentials masked.
"""

import logging
import re
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from chatgate.config import settings

# Keys whose values never reach the log sink
REDACTED_KEYS = frozenset(
    {"access_token", "authorization", "api_key", "service_role", "webhook_token"}
)
_BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+", re.IGNORECASE)


def add_service_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp the service identity on every entry."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.api_version
    return event_dict


def redact_credentials(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential-bearing keys and inline bearer tokens."""
    for key, value in event_dict.items():
        if key.lower() in REDACTED_KEYS:
            event_dict[key] = "[redacted]"
        elif isinstance(value, str) and "bearer" in value.lower():
            event_dict[key] = _BEARER_PATTERN.sub(r"\1[redacted]", value)
    return event_dict


def setup_logging() -> None:
    """
    Configure structlog on top of the stdlib root logger.

    LOG_FORMAT=json emits one JSON object per line:
    {
        "event": "turn_completed",
        "level": "info",
        "timestamp": "2026-09-01T12:00:00.123456Z",
        "logger": "chatgate.services.orchestrator",
        "service": "chatgate-api",
        "user_id": "...",
        "chat_id": "...",
        "stage": "done"
    }
    LOG_FORMAT=console renders coloured key=value lines for local runs.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_context,
        redact_credentials,
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
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("turn_gate_checked", user_id=user_id, paid_left=3)
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """
    Bind context variables for every log entry emitted inside the block.

    Nested blocks restore the outer values on exit.

    Usage:
        with log_context(user_id=str(user_id)):
            await orchestrator.run(request)
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
