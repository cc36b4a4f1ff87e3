"""Push transports for the realtime update channel."""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from attribution_engine.core.exceptions import ConnectionClosedError, HandshakeError

logger = logging.getLogger(__name__)


class PushTransport(ABC):
    """A bidirectional message connection.

    ``receive`` blocks until a frame arrives and raises
    ``ConnectionClosedError`` once the connection is gone.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection.

        Raises:
            HandshakeError: If the connection cannot be established
        """
        pass

    @abstractmethod
    async def send(self, message: dict[str, Any]) -> None:
        """Send a JSON message.

        Raises:
            ConnectionClosedError: If the connection is closed
        """
        pass

    @abstractmethod
    async def receive(self) -> str:
        """Wait for the next inbound frame.

        Raises:
            ConnectionClosedError: If the connection is closed
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call when already closed."""
        pass


class WebSocketTransport(PushTransport):
    """WebSocket transport built on ``websockets``."""

    def __init__(
        self,
        url: str,
        handshake_timeout: float = 10.0,
        headers: Optional[dict[str, str]] = None,
    ):
        """Initialize WebSocket transport.

        Args:
            url: ws:// or wss:// endpoint
            handshake_timeout: Seconds allowed for the opening handshake
            headers: Extra headers for the handshake request
        """
        self.url = url
        self.handshake_timeout = handshake_timeout
        self.headers = headers or {}
        self._connection: Optional[ClientConnection] = None

    async def connect(self) -> None:
        try:
            # Keepalive is handled by the channel's own heartbeat messages.
            self._connection = await connect(
                self.url,
                open_timeout=self.handshake_timeout,
                additional_headers=self.headers,
                ping_interval=None,
            )
        except (InvalidHandshake, InvalidURI, OSError, asyncio.TimeoutError) as e:
            raise HandshakeError(f"Failed to connect to {self.url}: {e}") from e
        logger.info(f"Connected to push channel at {self.url}")

    async def send(self, message: dict[str, Any]) -> None:
        if self._connection is None:
            raise ConnectionClosedError("Push connection is not open")
        try:
            await self._connection.send(json.dumps(message))
        except ConnectionClosed as e:
            raise ConnectionClosedError(f"Push connection closed: {e}") from e

    async def receive(self) -> str:
        if self._connection is None:
            raise ConnectionClosedError("Push connection is not open")
        try:
            frame = await self._connection.recv()
        except ConnectionClosed as e:
            raise ConnectionClosedError(f"Push connection closed: {e}") from e
        return frame if isinstance(frame, str) else frame.decode("utf-8", "replace")

    async def close(self) -> None:
        if self._connection is not None:
            connection, self._connection = self._connection, None
            await connection.close()
