"""Logging configuration for the application."""

import logging
import os
import sys
from typing import TextIO

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty HTTP libraries kept at INFO or above
_QUIET_LOGGERS = ("urllib3", "requests")


def _parse_level(level: str) -> int:
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")
    return numeric_level


def configure_logging(level_name: str | None = None, *, stream: TextIO | None = None) -> None:
    """Configure application-wide logging with a single handler.

    :param level_name: Log level name. Falls back to the LOG_LEVEL env var
        (DEBUG/INFO/WARNING/ERROR/CRITICAL, default INFO).
    :param stream: Stream to log to, defaulting to stdout. The CLI logs to
        stderr so its JSON output on stdout stays parseable.
    :raises ValueError: If the level name is not a valid logging level.
    """
    level_name = level_name or os.environ.get("LOG_LEVEL", "INFO")
    level = _parse_level(level_name)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    logging.getLogger(__name__).debug(f"Logging configured: level={level_name.upper()}")
