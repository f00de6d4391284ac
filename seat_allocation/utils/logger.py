"""Process-wide logging setup."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from seat_allocation.utils.config import get_settings


_LOGGING_CONFIGURED = False
_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Install the stdout handler once; later calls only adjust the level."""

    global _LOGGING_CONFIGURED
    resolved_level = (level or get_settings().log_level).upper()
    if _LOGGING_CONFIGURED:
        logging.getLogger().setLevel(resolved_level)
        return

    logging.basicConfig(
        level=resolved_level,
        format=_LOG_FORMAT,
        stream=sys.stdout,
    )
    _LOGGING_CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return a module logger, configuring the root handler on first use."""
    if not _LOGGING_CONFIGURED:
        configure_logging()
    return logging.getLogger(name)
