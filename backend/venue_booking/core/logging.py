"""
Structured logging configuration using structlog.

Events render as JSON in production and as a colored console otherwise.
Two layers of context are merged into every event:
- request context (request_id, method, path) bound by the middleware
- reservation context (payment_id, booking_id, venue_id) bound by the
  coordinator with `reservation_context`, so a confirmation can be traced
  from the gateway check through the critical section to the notification
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

from venue_booking.core.config import get_settings

HANDLER_NAME = "venue_booking"
RESERVATION_KEYS = ("payment_id", "booking_id", "venue_id")


def add_service_context(logger: Any, method_name: str, event_dict: dict) -> dict:
    settings = get_settings()
    event_dict.setdefault("service", settings.APP_NAME)
    event_dict.setdefault("environment", settings.ENVIRONMENT)
    return event_dict


@contextmanager
def reservation_context(**ids: Any) -> Iterator[None]:
    """Bind reservation ids for the duration of the block. None values are skipped."""
    unknown = set(ids) - set(RESERVATION_KEYS)
    if unknown:
        raise ValueError(f"Unknown reservation context keys: {sorted(unknown)}")
    with structlog.contextvars.bound_contextvars(**{k: v for k, v in ids.items() if v is not None}):
        yield


def setup_logging() -> None:
    """Configure structlog and the root handler. Safe to call more than once."""
    settings = get_settings()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        add_service_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.ENVIRONMENT == "production":
        # One JSON line per event, tracebacks included
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        # Stdlib records from uvicorn, sqlalchemy or stripe get the same context
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    root_logger = logging.getLogger()
    for existing in [h for h in root_logger.handlers if h.get_name() == HANDLER_NAME]:
        root_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    # The SDK logs every request at INFO, including intent ids we already log
    logging.getLogger("stripe").setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
