"""Attribution result caching."""

from typing import Optional

from attribution_engine.cache.base import ResultCacheBackend, make_cache_key
from attribution_engine.cache.memory import InMemoryResultCache
from attribution_engine.cache.redis_backend import RedisResultCache
from attribution_engine.core.config import CacheBackendType, ResultCacheConfig


def create_result_cache(config: Optional[ResultCacheConfig] = None) -> ResultCacheBackend:
    """Create the result cache selected by configuration."""
    config = config or ResultCacheConfig()
    if config.backend == CacheBackendType.REDIS:
        return RedisResultCache(
            url=config.redis_url,
            ttl_seconds=config.ttl_seconds,
            key_prefix=config.key_prefix,
        )
    return InMemoryResultCache(
        ttl_seconds=config.ttl_seconds,
        max_entries=config.max_entries,
        key_prefix=config.key_prefix,
    )


__all__ = [
    "InMemoryResultCache",
    "RedisResultCache",
    "ResultCacheBackend",
    "create_result_cache",
    "make_cache_key",
]
