"""structlog configuration.

Learn: Every module logs through structlog.get_logger() with a dotted
event name plus key/value context. RequestIdMiddleware binds request_id
into contextvars, and merge_contextvars folds it into every entry.
"""

import logging
from typing import Optional

import structlog


def configure_logging(debug: bool = False, json_logs: bool = False) -> None:
    """Configure structlog once at app startup."""
    level = logging.DEBUG if debug else logging.INFO
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


def mask_email(value: Optional[str]) -> str:
    """Keep the first three characters of an address for log correlation."""
    if not value:
        return ""
    return f"{value[:3]}***"
