"""Loguru sink setup.

Events are logged as ``logger.bind(service_name=..., event=..., **fields).info("")``, so the
payload lives in ``record["extra"]``. The JSON sink serializes extras; the text sink
appends them after the message.
"""
from __future__ import annotations

import sys

from loguru import logger

_TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "{name}:{function}:{line} - <level>{message}</level> {extra}"
)


def configure_logging(level: str = "INFO", *, serialize: bool = False) -> None:
    logger.remove()
    if serialize:
        logger.add(sys.stderr, level=level.upper(), serialize=True)
    else:
        logger.add(sys.stderr, level=level.upper(), format=_TEXT_FORMAT)
