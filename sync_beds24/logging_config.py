from __future__ import annotations

import logging
import sys
from typing import Any, Callable, Mapping, MutableMapping, cast

import structlog

from sync_beds24.config import LOG_LEVEL, LOG_REDACT_KEYS

# Type alias for structlog processor
Processor = Callable[[Any, str, MutableMapping[str, Any]], Any]

REDACTED = "[REDACTED]"
_REDACT_KEYS = frozenset(key.lower().replace("-", "_") for key in LOG_REDACT_KEYS)


def is_sensitive_key(key: str) -> bool:
    """Return True if a key name is one of the configured redaction keys (case-insensitive)."""
    return key.lower().replace("-", "_") in _REDACT_KEYS


def redact(value: Any) -> Any:
    """
    Recursively mask values stored under sensitive keys.

    Used both by the structlog pipeline and by the audit logger before metadata
    is persisted, so tokens and guest contact details never leave the process.

    Args:
        value: Any JSON-like structure (dict, list, scalar)

    Returns:
        A copy of the structure with sensitive values replaced

    Example:
        >>> redact({"token": "abc", "nested": {"email": "a@b.c", "count": 2}})
        {'token': '[REDACTED]', 'nested': {'email': '[REDACTED]', 'count': 2}}
    """
    if isinstance(value, Mapping):
        return {
            k: (REDACTED if isinstance(k, str) and is_sensitive_key(k) else redact(v))
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact(v) for v in value]
    return value


def redact_event(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor masking sensitive keys in log events."""
    for key in list(event_dict.keys()):
        if key == "event":
            continue
        if is_sensitive_key(key):
            event_dict[key] = REDACTED
        else:
            event_dict[key] = redact(event_dict[key])
    return event_dict


def setup_logging() -> None:
    """
    Configures structured logging globally using structlog.

    In production (LOG_LEVEL=INFO): Outputs JSON for log aggregation
    In development (LOG_LEVEL=DEBUG): Outputs human-readable console format

    trace_id and hotel_id bound through structlog.contextvars are merged into
    every event emitted while they are bound.
    """
    logging.basicConfig(
        format="[%(asctime)s] %(levelname)s in %(name)s:%(lineno)d: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        level=LOG_LEVEL,
    )

    # Suppress noise from common libraries
    for noisy_logger in [
        "urllib3",
        "requests",
        "uvicorn.access",
        "sqlalchemy.engine",
    ]:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    renderer: Processor = cast(
        Processor,
        (
            structlog.processors.JSONRenderer()
            if LOG_LEVEL == "INFO"
            else structlog.dev.ConsoleRenderer(colors=True)
        ),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_event,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(LOG_LEVEL)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
