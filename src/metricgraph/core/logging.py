"""Structured logging.

Usage:
    from metricgraph.core.logging import configure_logging, get_logger, log_context

    configure_logging(log_level="INFO", log_format="json")
    logger = get_logger(__name__)

    with log_context(command="request_metrics"):
        logger.warning("instruction_failed", error="no_join_path")
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, cast

import structlog
from structlog.typing import FilteringBoundLogger, Processor

LOG_FORMATS = ("console", "json")


def _renderer(log_format: str) -> list[Processor]:
    if log_format == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(exception_formatter=structlog.dev.plain_traceback)]


def configure_logging(log_level: str = "WARNING", log_format: str = "console") -> None:
    """Configure structlog and stdlib logging for the agent.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        log_format: "console" for terminals, "json" for log shipping
    """
    if log_format not in LOG_FORMATS:
        raise ValueError(f"log_format must be one of {LOG_FORMATS}, got {log_format!r}")
    level = logging.getLevelName(log_level.upper())

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            *_renderer(log_format),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # SQLAlchemy logs through stdlib
    logging.basicConfig(
        format="%(name)s %(levelname)s %(message)s",
        level=level,
        stream=sys.stderr,
        force=True,
    )


def get_logger(name: str | None = None) -> FilteringBoundLogger:
    """Logger for a module, usually ``get_logger(__name__)``."""
    return cast(FilteringBoundLogger, structlog.get_logger(name))


@contextmanager
def log_context(**context: Any) -> Iterator[None]:
    """Bind key/value pairs to every event logged inside the block.

    Usage:
        with log_context(metric_configuration_id=42):
            logger.info("query_executed")  # carries metric_configuration_id
    """
    with structlog.contextvars.bound_contextvars(**context):
        yield
