from __future__ import annotations

import sys

from loguru import logger

from eventsync.models import LoggingConfig


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def setup_logging(config: LoggingConfig | None = None) -> None:
    config = config or LoggingConfig()
    logger.remove()
    if config.environment == "production":
        logger.add(sys.stdout, level=config.level or "INFO", serialize=True)
        return
    logger.add(sys.stdout, format=CONSOLE_FORMAT, level=config.level or "DEBUG")
