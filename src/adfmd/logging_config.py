"""Logging configuration: loguru sink setup for the CLI"""

import sys

from loguru import logger


LOG_FORMAT = "<level>{level: <8}</level> | <cyan>{extra[stage]}</cyan> - <level>{message}</level>"


def configure_logging(level: str = "WARNING") -> None:
    """Replace loguru's default sink with a single stderr sink at level and enable adfmd output."""
    logger.remove()
    logger.enable("adfmd")
    logger.configure(extra={"stage": "-"})
    logger.add(sys.stderr, format=LOG_FORMAT, level=level, colorize=False)
