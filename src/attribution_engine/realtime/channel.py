"""Realtime update channel: push connection lifecycle and subscriber fan-out."""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from enum import Enum
from typing import Optional, Union

from attribution_engine.cache.base import ResultCacheBackend
from attribution_engine.core.config import RealtimeConfig
from attribution_engine.core.exceptions import TransportError
from attribution_engine.core.retry import exponential_backoff
from attribution_engine.models.configuration import ModelConfiguration
from attribution_engine.models.results import AttributionResult
from attribution_engine.realtime.messages import (
    HEARTBEAT_MESSAGE,
    ChannelEvent,
    ChannelEventType,
    MessageType,
    parse_message,
    parse_results,
)
from attribution_engine.realtime.transport import PushTransport

logger = logging.getLogger(__name__)

Subscriber = Callable[[ChannelEvent], Union[None, Awaitable[None]]]


class ChannelState(str, Enum):
    """Connection states of the realtime channel."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class RealtimeUpdateChannel:
    """Persistent push connection that keeps attribution results fresh.

    The connection runs in one background task. While connected a heartbeat
    is sent every ``heartbeat_interval_seconds``. When the transport closes
    the channel reconnects with exponential backoff; once
    ``max_reconnect_attempts`` consecutive attempts fail it moves to
    ``CLOSED`` and emits a single error event. ``disconnect()`` stops
    everything and moves to ``CLOSED`` from any state, including when it is
    called from a subscriber running on the connection task.

    ``CLOSED`` is the terminal disconnected state: a channel that gave up
    or was shut down reports ``CLOSED``. ``DISCONNECTED`` only describes a
    channel that has not been connected yet. ``connect()`` works from both.
    """

    def __init__(
        self,
        transport: PushTransport,
        cache: Optional[ResultCacheBackend] = None,
        config: Optional[RealtimeConfig] = None,
    ):
        """Initialize the channel.

        Args:
            transport: Push transport to run over
            cache: Result cache inbound updates are written through
            config: Realtime settings
        """
        self.transport = transport
        self.cache = cache
        self.config = config or RealtimeConfig()

        self._state = ChannelState.DISCONNECTED
        self._state_changed = asyncio.Event()
        self._subscribers: list[Subscriber] = []
        self._run_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._closing = False
        self.stats = {
            "connects": 0,
            "reconnect_attempts": 0,
            "messages_received": 0,
            "messages_ignored": 0,
            "results_received": 0,
            "heartbeats_sent": 0,
        }

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ChannelState.CONNECTED

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a subscriber.

        Args:
            callback: Called with every ``ChannelEvent``; may be a coroutine
                function

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def connect(self) -> None:
        """Start the connection task if it is not already running."""
        if self._run_task is not None and not self._run_task.done():
            return
        self._closing = False
        self._run_task = asyncio.create_task(self._run())

    async def disconnect(self) -> None:
        """Cancel heartbeat and reconnect work, close the transport and move
        to ``CLOSED``."""
        self._closing = True
        current = asyncio.current_task()
        tasks = [
            t
            for t in (self._heartbeat_task, self._run_task)
            if t is not None and t is not current
        ]
        for task in tasks:
            if not task.done():
                task.cancel()
        self._heartbeat_task = None
        self._run_task = None

        await asyncio.gather(*tasks, return_exceptions=True)
        await self._close_transport()
        self._set_state(ChannelState.CLOSED)

    async def wait_for_state(
        self, *states: ChannelState, timeout: Optional[float] = None
    ) -> ChannelState:
        """Wait until the channel reaches one of ``states``."""

        async def _wait() -> ChannelState:
            while self._state not in states:
                self._state_changed.clear()
                await self._state_changed.wait()
            return self._state

        return await asyncio.wait_for(_wait(), timeout)

    async def publish_results(self, results: Iterable[AttributionResult]) -> None:
        """Deliver locally computed results to subscribers."""
        results = list(results)
        if results:
            await self._notify(
                ChannelEvent(type=ChannelEventType.ATTRIBUTION_UPDATE, results=results)
            )

    async def broadcast_configuration(self, config: ModelConfiguration) -> None:
        """Deliver a newly active configuration to subscribers."""
        await self._notify(
            ChannelEvent(type=ChannelEventType.CONFIGURATION_UPDATE, configuration=config)
        )

    def _stopping(self) -> bool:
        """Whether the calling connection task has been shut down."""
        return self._closing or asyncio.current_task() is not self._run_task

    async def _run(self) -> None:
        """Connection loop: connect, serve, and reconnect with backoff.

        ``disconnect()`` may run on this task (from a subscriber), so the
        loop re-checks ``_stopping()`` after every await that can reach
        subscriber code or the transport.
        """
        attempt = 0
        self._set_state(ChannelState.CONNECTING)
        try:
            while True:
                try:
                    await self.transport.connect()
                except TransportError as e:
                    failure: Optional[Exception] = e
                else:
                    attempt = 0
                    self.stats["connects"] += 1
                    self._set_state(ChannelState.CONNECTED)
                    failure = await self._serve()

                if self._stopping():
                    return
                await self._close_transport()

                if attempt >= self.config.max_reconnect_attempts:
                    self._set_state(ChannelState.CLOSED)
                    logger.error(
                        f"Push channel gave up after {attempt} reconnect attempts: {failure}",
                        extra={"attempt": attempt},
                    )
                    await self._notify(
                        ChannelEvent(
                            type=ChannelEventType.ERROR,
                            error=f"Realtime connection lost after {attempt} "
                            f"reconnect attempts: {failure}",
                        )
                    )
                    return

                delay = exponential_backoff(
                    attempt,
                    self.config.reconnect_base_delay_seconds,
                    self.config.max_reconnect_delay_seconds,
                )
                attempt += 1
                self.stats["reconnect_attempts"] += 1
                self._set_state(ChannelState.RECONNECTING)
                logger.warning(
                    f"Push channel failure: {failure}. Reconnect attempt {attempt}/"
                    f"{self.config.max_reconnect_attempts} in {delay:.2f} seconds",
                    extra={"attempt": attempt},
                )
                await asyncio.sleep(delay)
                if self._stopping():
                    return
        except asyncio.CancelledError:
            await self._close_transport()
            raise

    async def _serve(self) -> Optional[Exception]:
        """Receive frames until the transport fails or the channel is shut down.

        Returns:
            The transport failure, or None after a shutdown
        """
        heartbeat = asyncio.create_task(self._heartbeat())
        self._heartbeat_task = heartbeat
        try:
            while True:
                try:
                    frame = await self.transport.receive()
                except TransportError as e:
                    return e
                await self._handle_frame(frame)
                if self._stopping():
                    return None
        finally:
            heartbeat.cancel()
            await asyncio.gather(heartbeat, return_exceptions=True)
            if self._heartbeat_task is heartbeat:
                self._heartbeat_task = None

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.config.heartbeat_interval_seconds)
            try:
                await self.transport.send(HEARTBEAT_MESSAGE)
                self.stats["heartbeats_sent"] += 1
            except TransportError as e:
                # The receive loop observes the closure and drives reconnection.
                logger.warning(f"Heartbeat failed: {e}")
                await self._close_transport()
                return

    async def _handle_frame(self, frame: str) -> None:
        self.stats["messages_received"] += 1
        message = parse_message(frame)
        if message is None:
            self.stats["messages_ignored"] += 1
            return

        message_type = message["type"]
        if message_type == MessageType.HEARTBEAT.value:
            return
        if message_type != MessageType.ATTRIBUTION_UPDATE.value:
            self.stats["messages_ignored"] += 1
            logger.debug(f"Ignoring push message of type {message_type}")
            return

        results = parse_results(message)
        if not results:
            return
        self.stats["results_received"] += len(results)

        if self.cache is not None:
            for result in results:
                await self.cache.write_through(result)

        await self._notify(
            ChannelEvent(type=ChannelEventType.ATTRIBUTION_UPDATE, results=results)
        )

    async def _notify(self, event: ChannelEvent) -> None:
        for callback in list(self._subscribers):
            try:
                outcome = callback(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.exception(f"Subscriber failed handling {event.type} event")

    async def _close_transport(self) -> None:
        try:
            await self.transport.close()
        except TransportError as e:
            logger.debug(f"Error closing push transport: {e}")

    def _set_state(self, state: ChannelState) -> None:
        if state == self._state:
            return
        logger.info(
            f"Push channel {self._state.value} -> {state.value}",
            extra={"channel_state": state.value},
        )
        self._state = state
        self._state_changed.set()
