"""Structured logging configuration."""

from __future__ import annotations

import logging

import structlog

from app.backend.src.core.config import get_settings


def configure_logging() -> None:
    """Configure JSON logging for the service and route structlog through it."""

    level = getattr(logging, get_settings().log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='{"level": "%(levelname)s", "logger": "%(name)s", "message": %(message)s}',
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
