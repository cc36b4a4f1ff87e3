"""Redis-backed result cache for deployments sharing results across processes."""

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import urlparse, urlunparse

import redis.asyncio as redis
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import ConnectionError, RedisError

from attribution_engine.cache.base import (
    DEFAULT_KEY_PREFIX,
    ResultCacheBackend,
    make_cache_key,
)
from attribution_engine.core.exceptions import TransportError
from attribution_engine.models.results import AttributionResult

logger = logging.getLogger(__name__)


def sanitize_redis_url(url: str) -> str:
    """Sanitize Redis URL for logging by removing credentials."""
    parsed = urlparse(url)
    if not parsed.password:
        return url
    host = f"{parsed.hostname}:{parsed.port}" if parsed.port else str(parsed.hostname)
    netloc = f"{parsed.username}:***@{host}" if parsed.username else f":***@{host}"
    return urlunparse(parsed._replace(netloc=netloc))


class RedisResultCache(ResultCacheBackend):
    """Result cache stored in Redis.

    Entries expire through ``SETEX``; capacity is left to the server's
    eviction policy. The invalidation generation lives in Redis so every
    process sharing the prefix observes it. Each result key is also added
    to a set indexed by (sequence, config) so ``write_through`` can find
    every time range cached for the pair.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        ttl_seconds: int = 300,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        client: Optional[redis.Redis] = None,
        socket_timeout: int = 5,
    ):
        """Initialize Redis result cache.

        Args:
            url: Redis URL (redis://host:port/db)
            ttl_seconds: Time to live for each entry
            key_prefix: Prefix shared by every key this cache writes
            client: Preconfigured client, mainly for tests
            socket_timeout: Socket connect/operation timeout
        """
        self.url = url
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self._client = client
        self._socket_timeout = socket_timeout
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def generation_key(self) -> str:
        return f"{self.key_prefix}:meta:generation"

    @property
    def generation(self) -> int:
        return self._generation

    def _get_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                self.url,
                decode_responses=True,
                socket_connect_timeout=self._socket_timeout,
                socket_timeout=self._socket_timeout,
            )
        return self._client

    def index_key_for(self, sequence_id: str, config_id: str) -> str:
        """Key of the set holding every result key for a (sequence, config) pair."""
        return make_cache_key(
            sequence_id, config_id, prefix=f"{self.key_prefix}:index"
        )

    async def _current_generation(self, client: redis.Redis) -> int:
        value = await client.get(self.generation_key)
        self._generation = int(value) if value is not None else 0
        return self._generation

    async def current_generation(self) -> int:
        try:
            return await self._current_generation(self._get_client())
        except RedisError as e:
            logger.warning(
                f"Redis error reading cache generation, using last seen "
                f"{self._generation}: {e}"
            )
            return self._generation

    async def _store(
        self, client: redis.Redis, key: str, result: AttributionResult
    ) -> bool:
        stored = await client.setex(
            key, self.ttl_seconds, result.model_dump_json(by_alias=True)
        )
        index_key = self.index_key_for(result.sequence_id, result.config_id)
        await client.sadd(index_key, key)
        await client.expire(index_key, self.ttl_seconds)
        return bool(stored)

    async def get(self, key: str) -> Optional[AttributionResult]:
        try:
            value = await self._get_client().get(key)
        except ConnectionError:
            logger.warning(
                f"Redis connection error getting key: {key} (URL: {sanitize_redis_url(self.url)})"
            )
            return None
        except RedisError as e:
            logger.error(f"Redis error getting key {key}: {e}")
            return None

        if value is None:
            return None
        try:
            return AttributionResult.model_validate_json(value)
        except PydanticValidationError:
            logger.warning(f"Discarding undecodable cached result for key {key}")
            return None

    async def put(
        self,
        key: str,
        result: AttributionResult,
        generation: Optional[int] = None,
    ) -> bool:
        async with self._lock:
            try:
                client = self._get_client()
                if generation is not None:
                    current = await self._current_generation(client)
                    if generation != current:
                        logger.debug(
                            f"Dropping stale cache write for {key} "
                            f"(generation {generation}, current {current})"
                        )
                        return False
                return await self._store(client, key, result)
            except ConnectionError:
                logger.warning(
                    f"Redis connection error setting key: {key} (URL: {sanitize_redis_url(self.url)})"
                )
                return False
            except RedisError as e:
                logger.error(f"Redis error setting key {key}: {e}")
                return False

    async def write_through(self, result: AttributionResult) -> int:
        index_key = self.index_key_for(result.sequence_id, result.config_id)
        async with self._lock:
            try:
                client = self._get_client()
                keys = set(await client.smembers(index_key))
                keys.add(self.key_for(result.sequence_id, result.config_id))
                written = 0
                for key in sorted(keys):
                    if await self._store(client, key, result):
                        written += 1
                return written
            except RedisError as e:
                logger.error(
                    f"Redis error writing pushed result for sequence "
                    f"{result.sequence_id}: {e}"
                )
                return 0

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._get_client().delete(key))
        except RedisError as e:
            logger.error(f"Redis error deleting key {key}: {e}")
            return False

    async def invalidate_all(self) -> int:
        """Bump the generation, then delete every result key under the prefix.

        Raises:
            TransportError: If Redis cannot be reached; cached results may
                still be present
        """
        async with self._lock:
            try:
                client = self._get_client()
                self._generation = int(await client.incr(self.generation_key))

                keys = []
                cursor = 0
                while True:
                    cursor, batch = await client.scan(
                        cursor, match=f"{self.key_prefix}:*", count=100
                    )
                    keys.extend(k for k in batch if k != self.generation_key)
                    if cursor == 0:
                        break

                removed = await client.delete(*keys) if keys else 0
            except RedisError as e:
                logger.error(
                    f"Redis error invalidating results (URL: {sanitize_redis_url(self.url)}): {e}"
                )
                raise TransportError(f"Failed to invalidate result cache: {e}") from e

            logger.info(
                f"Invalidated {removed} cached results (generation {self._generation})"
            )
            return int(removed)

    async def get_stats(self) -> dict[str, Any]:
        try:
            client = self._get_client()
            info = await client.info()
            generation = await self._current_generation(client)
        except RedisError as e:
            logger.error(f"Error getting Redis stats: {e}")
            return {"backend": "redis", "connected": False, "error": str(e)}

        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        total = hits + misses
        return {
            "backend": "redis",
            "connected": True,
            "generation": generation,
            "ttl_seconds": self.ttl_seconds,
            "used_memory": info.get("used_memory_human", "unknown"),
            "keyspace_hits": hits,
            "keyspace_misses": misses,
            "hit_rate": (hits / total * 100) if total > 0 else 0.0,
        }

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
