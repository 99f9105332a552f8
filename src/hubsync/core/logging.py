"""Structured logging setup.

Uses structlog for structured JSON logging in production and
human-readable console output elsewhere. The log level is passed in at
startup rather than read from module state, so every entry point
(script, worker, tests) decides its own verbosity.
"""

from __future__ import annotations

import logging

import structlog

from src.hubsync.config import Environment


def configure_structlog(
    level: str = "INFO",
    environment: Environment = Environment.development,
) -> None:
    """Configure stdlib logging level and structlog processors."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logging.basicConfig(format="%(message)s", level=numeric_level, force=True)

    shared_processors: list = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if environment == Environment.production:
        shared_processors.append(structlog.processors.JSONRenderer())
    else:
        shared_processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
