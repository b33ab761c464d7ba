"""
Structured logging setup.

Every module logs through ``structlog.get_logger(__name__)``; this module
wires the processor chain once at startup.
"""

import logging

import structlog

from core.config import settings

_configured = False


def configure_logging() -> None:
    """Configure structlog processors and the stdlib root logger."""
    global _configured
    if _configured:
        return

    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO

    # APScheduler and other stdlib loggers share the same level
    logging.basicConfig(format="%(message)s", level=level)

    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.APP_ENV in ("development", "test")
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    _configured = True
