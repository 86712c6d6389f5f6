"""
structlog configuration.

Local runs get coloured console output; every other environment emits one JSON
object per line for the log collector.
"""

import logging

import structlog

from core.config import get_settings


def configure_logging() -> None:
    settings = get_settings()
    is_local = settings.app_env.strip().lower() in {"", "local", "dev", "development", "test"}
    level = logging.DEBUG if settings.debug else logging.INFO

    renderer = structlog.dev.ConsoleRenderer() if is_local else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
