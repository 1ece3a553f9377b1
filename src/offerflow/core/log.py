"""Logging configuration."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
)


def setup_logger(log_level: str = "INFO", log_file: str | Path | None = None) -> None:
    logger.remove()

    logger.add(
        sys.stderr,
        format=LOG_FORMAT,
        level=log_level,
        colorize=True,
    )

    if log_file:
        logger.add(
            str(log_file),
            format=LOG_FORMAT,
            level=log_level,
            rotation="10 MB",
            retention=5,
            encoding="utf-8",
        )

    logger.debug("Logger initialized")
