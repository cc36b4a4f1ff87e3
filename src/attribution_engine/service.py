"""Wiring of the attribution engine components from settings."""

import logging
from typing import Optional

from attribution_engine.attribution.engine import AttributionCalculator
from attribution_engine.attribution.manager import ConfigurationManager
from attribution_engine.attribution.pipeline import AttributionPipeline
from attribution_engine.cache import create_result_cache
from attribution_engine.cache.base import ResultCacheBackend
from attribution_engine.clients.store import ConfigurationStoreClient
from attribution_engine.core.config import Settings, get_settings
from attribution_engine.core.exceptions import PersistenceError
from attribution_engine.models.configuration import default_configuration
from attribution_engine.realtime.channel import RealtimeUpdateChannel
from attribution_engine.realtime.transport import PushTransport, WebSocketTransport

logger = logging.getLogger(__name__)


class AttributionService:
    """Owns the store client, cache, realtime channel, manager and pipeline."""

    def __init__(
        self,
        settings: Settings,
        store: ConfigurationStoreClient,
        cache: ResultCacheBackend,
        channel: RealtimeUpdateChannel,
    ):
        self.settings = settings
        self.store = store
        self.cache = cache
        self.channel = channel
        self.manager = ConfigurationManager(
            store=store,
            cache=cache,
            channel=channel,
            initial=default_configuration(),
        )
        self.pipeline = AttributionPipeline(self.manager, AttributionCalculator())

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[PushTransport] = None,
    ) -> "AttributionService":
        """Build every component from settings.

        Args:
            settings: Engine settings (process settings when omitted)
            transport: Push transport override; a WebSocket transport otherwise
        """
        settings = settings or get_settings()
        store = ConfigurationStoreClient(settings.store)
        cache = create_result_cache(settings.cache)

        if transport is None:
            headers = {}
            if settings.store.api_token:
                headers["Authorization"] = f"Bearer {settings.store.api_token}"
            transport = WebSocketTransport(
                settings.realtime.url,
                handshake_timeout=settings.realtime.handshake_timeout_seconds,
                headers=headers,
            )

        channel = RealtimeUpdateChannel(transport, cache=cache, config=settings.realtime)
        return cls(settings, store, cache, channel)

    async def start(self) -> None:
        """Load the active configuration and open the realtime channel.

        If the store has no active configuration, or cannot be reached, the
        default linear configuration stays in effect until an update is applied.
        """
        try:
            await self.manager.load_active_configuration()
        except PersistenceError as e:
            logger.error(f"Could not load active configuration, using default: {e}")

        await self.channel.connect()

    async def stop(self) -> None:
        """Close the channel, cache and store client."""
        await self.manager.disconnect()
        await self.cache.close()
        await self.store.close()

    async def __aenter__(self) -> "AttributionService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
