"""Loguru setup helpers."""

from __future__ import annotations

import sys
from typing import Any

from loguru import logger


def configure_logging(level: str = "INFO", sink: Any = sys.stderr) -> int:
    """Replace loguru's default handler with one at ``level``.

    Returns the handler id so callers can remove it later.
    """
    logger.remove()
    return logger.add(sink, level=level.upper())
