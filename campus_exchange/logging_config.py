"""Logging setup shared by the whole package."""
from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("campus_exchange")


def setup_logging(level: str | int = "INFO") -> logging.Logger:
    """Attach a stream handler to the package logger once."""
    if isinstance(level, str):
        level = logging.getLevelName(level.strip().upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger.setLevel(level)
    if not any(getattr(h, "_campus_handler", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._campus_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
