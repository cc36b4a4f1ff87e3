"""Configuration manager: validate, persist, invalidate and broadcast."""

import asyncio
import logging
from typing import Optional

from attribution_engine.attribution.validation import validate
from attribution_engine.cache.base import ResultCacheBackend
from attribution_engine.clients.store import ConfigurationStoreClient, StoreRejection
from attribution_engine.core.exceptions import TransportError
from attribution_engine.logging.context import LogContext
from attribution_engine.models.configuration import (
    DEFAULT_VALIDATION_RULES,
    ModelConfiguration,
    ModelStatus,
    ValidationRules,
)
from attribution_engine.models.results import ConfigurationUpdateResult, UpdateStatus
from attribution_engine.realtime.channel import RealtimeUpdateChannel

logger = logging.getLogger(__name__)

UPDATE_IN_PROGRESS = "CONFIGURATION_UPDATE_IN_PROGRESS"
PERSISTENCE_FAILED = "PERSISTENCE_FAILED"


class ConfigurationManager:
    """Owner of the active attribution configuration.

    Updates run one at a time; a concurrent request is answered with
    ``BUSY`` instead of being queued. A failed update leaves the previous
    configuration in effect.
    """

    def __init__(
        self,
        store: ConfigurationStoreClient,
        cache: ResultCacheBackend,
        channel: Optional[RealtimeUpdateChannel] = None,
        rules: ValidationRules = DEFAULT_VALIDATION_RULES,
        initial: Optional[ModelConfiguration] = None,
    ):
        """Initialize the manager.

        Args:
            store: Configuration store client
            cache: Result cache invalidated on every applied update
            channel: Realtime channel new configurations are broadcast on
            rules: Validation bounds
            initial: Configuration active before any update
        """
        self.store = store
        self.cache = cache
        self.channel = channel
        self.rules = rules
        self._active = initial
        self._history: list[ModelConfiguration] = []
        self._update_lock = asyncio.Lock()

    @property
    def active_configuration(self) -> Optional[ModelConfiguration]:
        """The configuration currently in effect."""
        return self._active

    @property
    def history(self) -> tuple[ModelConfiguration, ...]:
        """Superseded configurations, oldest first, archived for audit."""
        return tuple(self._history)

    @property
    def update_in_progress(self) -> bool:
        return self._update_lock.locked()

    async def load_active_configuration(self) -> Optional[ModelConfiguration]:
        """Load the active configuration from the store.

        Raises:
            PersistenceError: If the store cannot be reached
        """
        async with self._update_lock:
            config = await self.store.get_active_configuration()
            if config is not None:
                self._active = config.with_status(ModelStatus.ACTIVE)
                logger.info(
                    f"Loaded active configuration {config.config_id} ({config.model})",
                    extra={"config_id": config.config_id},
                )
            return self._active

    async def update_configuration(
        self, candidate: ModelConfiguration
    ) -> ConfigurationUpdateResult:
        """Validate, persist and activate a candidate configuration.

        Args:
            candidate: Proposed configuration

        Returns:
            APPLIED with the new configuration, REJECTED with validation
            errors, BUSY if another update is running, or FAILED if the
            store could not be reached
        """
        if self._update_lock.locked():
            logger.warning(
                f"Rejecting update {candidate.config_id}: another update is in progress"
            )
            return ConfigurationUpdateResult(
                status=UpdateStatus.BUSY,
                configuration=self._active,
                code=UPDATE_IN_PROGRESS,
                message="Configuration update already in progress",
            )

        async with self._update_lock:
            with LogContext(config_id=candidate.config_id):
                return await self._apply(candidate)

    async def _apply(self, candidate: ModelConfiguration) -> ConfigurationUpdateResult:
        errors = validate(candidate, self.rules)
        if errors:
            logger.info(
                f"Configuration {candidate.config_id} failed validation "
                f"with {len(errors)} errors"
            )
            return ConfigurationUpdateResult(
                status=UpdateStatus.REJECTED, configuration=self._active, errors=errors
            )

        try:
            persisted = await self.store.put_configuration(
                candidate.with_status(ModelStatus.VALIDATED)
            )
        except StoreRejection as e:
            logger.info(f"Store rejected configuration {candidate.config_id}: {e}")
            return ConfigurationUpdateResult(
                status=UpdateStatus.REJECTED,
                configuration=self._active,
                errors=e.errors,
            )
        except TransportError as e:
            logger.error(f"Failed to persist configuration {candidate.config_id}: {e}")
            return ConfigurationUpdateResult(
                status=UpdateStatus.FAILED,
                configuration=self._active,
                code=PERSISTENCE_FAILED,
                message=str(e),
            )

        try:
            await self.cache.invalidate_all()
        except TransportError as e:
            # Keys embed the config id, so old entries can no longer be hit.
            logger.error(f"Result cache invalidation failed: {e}")

        previous = self._active
        self._active = persisted.with_status(ModelStatus.ACTIVE)
        if previous is not None:
            self._history.append(previous.with_status(ModelStatus.ARCHIVED))

        logger.info(
            f"Activated configuration {self._active.config_id} ({self._active.model})"
        )

        if self.channel is not None:
            await self.channel.broadcast_configuration(self._active)

        return ConfigurationUpdateResult(
            status=UpdateStatus.APPLIED, configuration=self._active
        )

    async def disconnect(self) -> None:
        """Shut down the realtime channel."""
        if self.channel is not None:
            await self.channel.disconnect()
