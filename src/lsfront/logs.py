"""Logging setup.

stdout carries the JSON-RPC stream, so the only sink is stderr.
"""

from __future__ import annotations

import sys
from typing import TextIO

from loguru import logger

_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", *, sink: TextIO | None = None) -> int:
    logger.remove()
    return logger.add(
        sink if sink is not None else sys.stderr,
        level=level.upper(),
        format=_FORMAT,
        backtrace=False,
        diagnose=False,
    )
