"""
provisioner.core.logging - Structured Logging Setup
=====================================================

Every component logs through structlog (``structlog.get_logger()`` at module
level, ``logger.bind(component=...)`` per instance). This module configures
the renderer once per process: timestamped, levelled, human-readable lines on
stdout. Warnings go to the same stream as info; only fatal diagnostics are
written to stderr, by the CLI.

The stdlib ``logging`` root logger is pointed at the same stream so modules
that use ``logging.getLogger(__name__)`` (the state store) share the output.
"""

from __future__ import annotations

import logging
import sys
from typing import IO, Optional

import structlog


def configure_logging(level: str = "INFO", stream: Optional[IO[str]] = None) -> None:
    """Configure structlog and stdlib logging for the CLI.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        stream: Output stream. Defaults to stdout.
    """
    stream = stream or sys.stdout
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logging.basicConfig(
        level=numeric_level,
        stream=stream,
        format="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )
