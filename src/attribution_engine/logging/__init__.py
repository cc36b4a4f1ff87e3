"""Logging infrastructure for the attribution engine."""

from attribution_engine.logging.config import configure_logging, get_logger
from attribution_engine.logging.context import (
    LogContext,
    add_context,
    clear_context,
    get_context,
)
from attribution_engine.logging.formatters import JSONFormatter

__all__ = [
    "configure_logging",
    "get_logger",
    "JSONFormatter",
    "LogContext",
    "add_context",
    "clear_context",
    "get_context",
]
