# src/rtc_infer/log.py
from __future__ import annotations

import sys
from typing import Any, Optional

from loguru import logger

DEFAULT_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", sink: Optional[Any] = None, fmt: Optional[str] = None) -> int:
    """
    Replace loguru's default handler with a single sink.

    Only entry points call this; library modules just import `logger`.
    Returns the handler id so callers can remove it again.
    """
    logger.remove()
    return logger.add(
        sink if sink is not None else sys.stderr,
        level=level.upper(),
        format=fmt or DEFAULT_FORMAT,
        backtrace=False,
        diagnose=False,
    )
