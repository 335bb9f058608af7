"""Logging setup for Price Tracker."""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from .config import LoggingConfig


def setup_logging(config: LoggingConfig, level: Optional[str] = None) -> None:
    """Route loguru output to stderr and, when configured, a rotating file.

    Args:
        config: ``logging`` section of the configuration
        level: Overrides ``config.level`` for both sinks
    """
    level = (level or config.level).upper()

    logger.remove()
    logger.add(sys.stderr, format=config.console_format, level=level, colorize=True)

    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path,
            format=config.file_format,
            level=level,
            rotation=config.rotation,
            retention=config.retention,
            compression=config.compression or None,
        )

    logger.debug(f"Logging to stderr{f' and {config.file}' if config.file else ''} at {level}")
