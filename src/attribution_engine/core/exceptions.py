"""Custom exceptions for the attribution engine.

Validation and computation problems are returned as data (see
``attribution_engine.models``); the exceptions here cover failures that
are retried internally before being surfaced.
"""


class AttributionEngineError(Exception):
    """Base exception for all attribution engine errors."""

    pass


class ConfigurationError(AttributionEngineError):
    """Raised when engine settings are invalid."""

    pass


class TransportError(AttributionEngineError):
    """Raised when a network call to an external service fails."""

    def __init__(self, message: str, retryable: bool = True):
        """Initialize transport error.

        Args:
            message: Error message
            retryable: Whether the failure is worth retrying
        """
        super().__init__(message)
        self.retryable = retryable


class PersistenceError(TransportError):
    """Raised when the configuration store cannot be reached or fails."""

    def __init__(
        self, message: str, status_code: int | None = None, retryable: bool = True
    ):
        """Initialize persistence error.

        Args:
            message: Error message
            status_code: HTTP status returned by the store, if any
            retryable: Whether the failure is worth retrying
        """
        super().__init__(message, retryable=retryable)
        self.status_code = status_code


class ConnectionClosedError(TransportError):
    """Raised when the realtime push connection closes unexpectedly."""

    pass


class HandshakeError(TransportError):
    """Raised when the realtime push connection cannot be established."""

    pass
