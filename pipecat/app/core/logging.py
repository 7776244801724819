"""Logging setup: loguru to stderr, stdout stays reserved for message lines."""
from __future__ import annotations

import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "{extra[service_name]} | {extra[event]} | {message} {extra}"
)


def configure_logging(level: str = "WARNING") -> None:
    logger.remove()
    logger.configure(extra={"service_name": "-", "event": "-"})
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT, backtrace=False)
