"""Logging configuration for the storefront service."""

import logging
from typing import Optional

import structlog

from storefront.core.config import settings


def configure_logging(level: Optional[str] = None, json: Optional[bool] = None) -> None:
    """Route stdlib and structlog output through one renderer."""
    level_name = (level or settings.LOG_LEVEL).upper()
    use_json = settings.LOG_JSON if json is None else json

    log_level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(format="%(message)s", level=log_level)

    renderer = structlog.processors.JSONRenderer() if use_json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )

    # Suppress noisy library loggers
    logging.getLogger("kafka").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
