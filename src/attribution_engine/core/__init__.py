"""Core settings, exceptions and retry helpers."""

from attribution_engine.core.config import Settings, get_settings
from attribution_engine.core.exceptions import (
    AttributionEngineError,
    ConfigurationError,
    ConnectionClosedError,
    HandshakeError,
    PersistenceError,
    TransportError,
)

__all__ = [
    "Settings",
    "get_settings",
    "AttributionEngineError",
    "ConfigurationError",
    "ConnectionClosedError",
    "HandshakeError",
    "PersistenceError",
    "TransportError",
]
