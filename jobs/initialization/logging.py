"""
Worker Initialization - Logging Module.

Module: logging.py
Configures loguru logger for the settlement worker.
Sets up log rotation and retention policies.
"""

import sys

from loguru import logger

from dedata.config.settings import Settings


def setup_logging(settings: Settings) -> None:
    """Configure logger with file rotation."""
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    logger.add(
        settings.log_file,
        rotation="1 day",
        retention="7 days",
        level=settings.log_level,
        encoding="utf-8",
    )

    logger.info(f"Starting settlement worker ({settings.environment})...")
