"""Logging configuration and setup."""

import logging
import sys

from attribution_engine.core.config import LogFormat, LoggingConfig, Settings
from attribution_engine.logging.formatters import JSONFormatter

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings, config: LoggingConfig | None = None) -> None:
    """Configure logging for the application.

    Args:
        settings: Application settings
        config: Optional logging configuration override
    """
    if config is None:
        config = settings.logging

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    level = "DEBUG" if settings.debug else config.level.upper()
    root_logger.setLevel(getattr(logging, level, logging.INFO))

    console_handler = logging.StreamHandler(sys.stdout)
    if config.format == LogFormat.JSON:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    root_logger.addHandler(console_handler)

    # Set third-party log levels to reduce noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
