"""Structured logging configuration.

Sets up structlog for the wrapper's own diagnostics. These events are
separate from the build log: the build log is what the job prints and what
regex descriptions are matched against, while structlog events describe
what the wrapper itself did (status posted, inference failed, ...).

Events go to stderr so they never interleave with build output echoed on
stdout.

Usage:
    from git_status_wrapper.logging_config import setup_logging, get_logger

    setup_logging(environment="production", log_level="DEBUG")
    logger = get_logger(__name__)
    logger.info("status_posting", state="pending", context="ci/build")
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

from git_status_wrapper.errors import ConfigError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_log_level(log_level: str) -> int:
    """Numeric level for a level name, case-insensitive.

    Raises:
        ConfigError: For anything other than the standard level names.
    """
    name = log_level.strip().upper()
    if name not in LOG_LEVELS:
        raise ConfigError(
            f"Unknown log level {log_level!r}, expected one of {', '.join(LOG_LEVELS)}"
        )
    return logging.getLevelNamesMapping()[name]


def setup_logging(environment: str = "development", log_level: str = "INFO") -> None:
    """Configure structured logging for the wrapper.

    Both values normally come from WrapperSettings, which already applies
    the GIT_STATUS_WRAPPER_* environment overrides.

    Args:
        environment: "production" renders JSON lines for log collectors,
                     anything else a colorized console format.
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.

    Raises:
        ConfigError: If log_level is not a known level name.
    """
    level = parse_log_level(log_level)

    if environment == "production":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    # httpx logs every request at INFO; keep those for DEBUG only
    if level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> Any:
    """Get a structured logger instance, typically get_logger(__name__)."""
    return structlog.get_logger(name)
