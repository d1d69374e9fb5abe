"""
Logging setup.

Configures loguru sinks for services and scripts.
"""

import sys

from loguru import logger

from app.config.settings import settings


def setup_logging(level: str | None = None) -> None:
    """
    Configure logger: stderr sink plus optional file rotation.

    Args:
        level: Override for settings.log_level
    """
    logger.remove()
    logger.add(sys.stderr, level=level or settings.log_level)

    if settings.log_file:
        logger.add(
            settings.log_file,
            rotation="1 day",
            retention="7 days",
            level=level or settings.log_level,
            encoding="utf-8",
        )

    logger.info(
        "Logging configured",
        extra={"level": level or settings.log_level, "file": settings.log_file},
    )
