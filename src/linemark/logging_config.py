"""Loguru logging setup."""

import os
import sys
from typing import Optional

from loguru import logger


def setup_logging(level: Optional[str] = None) -> None:
    """Install a single stderr sink at the given level.

    Falls back to LINEMARK_LOG_LEVEL, then WARNING.
    """
    if level is None:
        level = os.environ.get("LINEMARK_LOG_LEVEL", "WARNING")

    logger.remove()
    logger.add(
        sys.stderr,
        format="<level>{level: <8}</level> | {name}:{function}:{line} | {message}",
        level=level.upper(),
        colorize=True,
    )
