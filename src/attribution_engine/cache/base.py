"""Base result cache interface."""

import hashlib
import json
from abc import ABC, abstractmethod
from typing import Any, Optional

from attribution_engine.models.configuration import TimeRange
from attribution_engine.models.results import AttributionResult

DEFAULT_KEY_PREFIX = "attribution:result"


def make_cache_key(
    sequence_id: str,
    config_id: str,
    time_range: Optional[TimeRange] = None,
    prefix: str = DEFAULT_KEY_PREFIX,
) -> str:
    """Build a cache key from the query shape.

    The query shape is hashed with SHA-256 so keys stay short and stable
    regardless of identifier content.

    Args:
        sequence_id: Sequence identity
        config_id: Configuration identity
        time_range: Optional time range the result was computed for
        prefix: Key prefix

    Returns:
        Cache key
    """
    shape = {
        "sequence_id": sequence_id,
        "config_id": config_id,
        "time_range": time_range.as_query() if time_range else None,
    }
    shape_json = json.dumps(shape, sort_keys=True)
    return f"{prefix}:{hashlib.sha256(shape_json.encode()).hexdigest()[:32]}"


class ResultCacheBackend(ABC):
    """Abstract base class for attribution result caches.

    Invalidation is whole-cache and bumps ``generation``. A writer that
    captured the generation before computing passes it to ``put``; the write
    is dropped if an invalidation happened in between.
    """

    key_prefix: str = DEFAULT_KEY_PREFIX

    def key_for(
        self,
        sequence_id: str,
        config_id: str,
        time_range: Optional[TimeRange] = None,
    ) -> str:
        """Cache key for a result under this cache's prefix."""
        return make_cache_key(sequence_id, config_id, time_range, prefix=self.key_prefix)

    @property
    @abstractmethod
    def generation(self) -> int:
        """Last invalidation generation seen by this process."""
        pass

    async def current_generation(self) -> int:
        """Authoritative invalidation generation, read before computing.

        Backends shared between processes refresh it from the store.
        """
        return self.generation

    @abstractmethod
    async def get(self, key: str) -> Optional[AttributionResult]:
        """Get a cached result.

        Args:
            key: The cache key

        Returns:
            The cached result or None if missing or expired
        """
        pass

    @abstractmethod
    async def put(
        self,
        key: str,
        result: AttributionResult,
        generation: Optional[int] = None,
    ) -> bool:
        """Store a result.

        Args:
            key: The cache key
            result: Result to cache
            generation: Generation observed before the result was computed

        Returns:
            True if stored, False if dropped as stale or on backend failure
        """
        pass

    @abstractmethod
    async def write_through(self, result: AttributionResult) -> int:
        """Store a pushed result under every key cached for its sequence and config.

        Keys are per query shape, so one (sequence, config) pair can be
        cached under several time ranges; all of them, and the range-less
        key, are replaced.

        Returns:
            Number of keys written
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a cached result.

        Returns:
            True if the key was deleted, False if not found
        """
        pass

    @abstractmethod
    async def invalidate_all(self) -> int:
        """Drop every cached result and start a new generation.

        Returns:
            Number of entries removed
        """
        pass

    @abstractmethod
    async def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None
