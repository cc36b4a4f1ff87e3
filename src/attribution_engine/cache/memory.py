"""In-memory result cache with TTL and LRU eviction."""

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

from attribution_engine.cache.base import DEFAULT_KEY_PREFIX, ResultCacheBackend
from attribution_engine.models.results import AttributionResult

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    result: AttributionResult
    expires_at: float


class InMemoryResultCache(ResultCacheBackend):
    """Process-local result cache.

    All reads and writes go through one ``asyncio.Lock`` so an invalidation
    can never interleave with a write. Keys are also indexed by the
    (sequence, config) pair of the stored result for ``write_through``.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_entries: int = 10_000,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            ttl_seconds: Time to live for each entry
            max_entries: Capacity; least recently used entries are evicted
            key_prefix: Prefix for keys built with ``key_for``
            clock: Monotonic time source in seconds
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.key_prefix = key_prefix
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._keys_by_group: dict[tuple[str, str], set[str]] = {}
        self._lock = asyncio.Lock()
        self._generation = 0
        self._stats = {
            "hits": 0,
            "misses": 0,
            "evictions": 0,
            "expirations": 0,
            "stale_writes": 0,
            "write_throughs": 0,
        }

    @property
    def generation(self) -> int:
        return self._generation

    async def get(self, key: str) -> Optional[AttributionResult]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats["misses"] += 1
                return None

            if entry.expires_at <= self._clock():
                self._remove(key)
                self._stats["expirations"] += 1
                self._stats["misses"] += 1
                return None

            self._entries.move_to_end(key)
            self._stats["hits"] += 1
            return entry.result

    async def put(
        self,
        key: str,
        result: AttributionResult,
        generation: Optional[int] = None,
    ) -> bool:
        async with self._lock:
            if generation is not None and generation != self._generation:
                self._stats["stale_writes"] += 1
                logger.debug(
                    f"Dropping stale cache write for {key} "
                    f"(generation {generation}, current {self._generation})"
                )
                return False

            self._store(key, result)
            return True

    async def write_through(self, result: AttributionResult) -> int:
        group = (result.sequence_id, result.config_id)
        async with self._lock:
            keys = set(self._keys_by_group.get(group, ()))
            keys.add(self.key_for(result.sequence_id, result.config_id))
            for key in keys:
                self._store(key, result)
            self._stats["write_throughs"] += 1
            return len(keys)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._remove(key)

    async def invalidate_all(self) -> int:
        async with self._lock:
            removed = len(self._entries)
            self._entries.clear()
            self._keys_by_group.clear()
            self._generation += 1
            logger.info(
                f"Invalidated {removed} cached results (generation {self._generation})"
            )
            return removed

    async def get_stats(self) -> dict[str, Any]:
        async with self._lock:
            hits = self._stats["hits"]
            total = hits + self._stats["misses"]
            return {
                "backend": "memory",
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "ttl_seconds": self.ttl_seconds,
                "generation": self._generation,
                **self._stats,
                "hit_rate": (hits / total * 100) if total > 0 else 0.0,
            }

    def _store(self, key: str, result: AttributionResult) -> None:
        previous = self._entries.get(key)
        if previous is not None and previous.result is not result:
            self._unindex(key, previous.result)

        self._entries[key] = _Entry(
            result=result, expires_at=self._clock() + self.ttl_seconds
        )
        self._entries.move_to_end(key)
        self._keys_by_group.setdefault(
            (result.sequence_id, result.config_id), set()
        ).add(key)

        while len(self._entries) > self.max_entries:
            evicted_key, evicted = self._entries.popitem(last=False)
            self._unindex(evicted_key, evicted.result)
            self._stats["evictions"] += 1

    def _remove(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        self._unindex(key, entry.result)
        return True

    def _unindex(self, key: str, result: AttributionResult) -> None:
        group = (result.sequence_id, result.config_id)
        keys = self._keys_by_group.get(group)
        if keys is None:
            return
        keys.discard(key)
        if not keys:
            del self._keys_by_group[group]
