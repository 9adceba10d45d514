"""Logging configuration for the order API."""

import logging

import structlog

import settings

_configured = False


def configure_logging(level: str = settings.LOG_LEVEL, fmt: str = settings.LOG_FORMAT, force: bool = False) -> None:
    """Set up stdlib logging and structlog once per process; ``force`` reapplies."""
    global _configured
    if _configured and not force:
        return

    logging.basicConfig(format="%(message)s", level=getattr(logging, level, logging.INFO))

    renderer = structlog.processors.JSONRenderer() if fmt == "json" else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level, logging.INFO)),
        cache_logger_on_first_use=True,
    )

    # Suppress noisy library loggers
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    _configured = True
