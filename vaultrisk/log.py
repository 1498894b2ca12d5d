"""Loguru sink configuration."""

import sys

from loguru import logger

from vaultrisk.config import settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str | None = None) -> int:
    """
    Replace loguru's default sink with a formatted stderr sink.

    Args:
        level: Logging level (defaults to settings.log_level)

    Returns:
        Handler id of the new sink
    """
    logger.remove()
    return logger.add(sys.stderr, format=LOG_FORMAT, level=(level or settings.log_level).upper())
