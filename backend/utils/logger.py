"""Process-wide logging setup for the occupancy pipeline."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from backend.utils.config import get_settings


_LOGGER_INITIALIZED = False

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# HTTP client libraries log every vision and workflow request at DEBUG/INFO.
_NOISY_LOGGERS = ("urllib3", "multipart", "python_multipart")


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root handler once.

    Pipeline stages, store writes and outbound calls all log through the same
    handler so a single run can be followed by its run id.
    """

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    resolved_level = (level or get_settings().log_level).upper()
    logging.basicConfig(level=resolved_level, format=LOG_FORMAT, stream=sys.stdout)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, logging.getLogger().level))
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Return a module logger, configuring the process on first use."""
    configure_logging()
    return logging.getLogger(name)
