"""Logging setup for the service and the image randomizer engine."""

from __future__ import annotations

import logging
import os
import sys
from typing import Iterable, Optional

PACKAGE_LOGGERS = ("app", "image_randomizer")

STRUCTURED_FORMAT = (
    "%(asctime)s | %(name)s | %(levelname)-8s | "
    "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s"
)
SIMPLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(
    level: Optional[str] = None,
    format_type: Optional[str] = None,
    names: Iterable[str] = PACKAGE_LOGGERS,
) -> None:
    """
    Attach one stdout handler to each package logger.

    Args:
        level: Log level name; falls back to ``LOG_LEVEL`` then INFO
        format_type: "structured" or "simple"; falls back to ``LOG_FORMAT``

    Calling it again replaces the handler instead of adding a second one.
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    style = (format_type or os.getenv("LOG_FORMAT", "simple")).lower()

    if style == "structured":
        formatter = logging.Formatter(STRUCTURED_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    else:
        formatter = logging.Formatter(SIMPLE_FORMAT)

    for name in names:
        logger = logging.getLogger(name)
        logger.setLevel(log_level)
        for handler in [h for h in logger.handlers if getattr(h, "_configured_here", False)]:
            logger.removeHandler(handler)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        handler._configured_here = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
        logger.propagate = False
