"""
ModelCache — Cache stores.

Backends:
- TaggedMemoryStore ("memory"): in-process, tag-aware
- MemoryStore ("array"): in-process, no tags (full-flush fallback)
- RedisStore ("redis"): shared, tag-aware
- NullStore ("null"): no-op
"""

from __future__ import annotations

from .base import CacheStore, TaggableCacheStore
from .memory import MemoryStore, TaggedMemoryStore
from .null import NullStore


def create_store(config) -> CacheStore:
    """
    Factory: create a cache store from ``ModelCacheConfig``.

    Args:
        config: ModelCacheConfig instance

    Returns:
        Configured CacheStore
    """
    store_type = config.store.lower()

    if store_type == "memory":
        return TaggedMemoryStore(max_size=config.max_size)

    elif store_type == "array":
        return MemoryStore(max_size=config.max_size)

    elif store_type == "redis":
        from .redis import RedisStore

        return RedisStore(
            url=config.redis_url,
            socket_timeout=config.redis_socket_timeout,
            key_prefix=config.key_prefix,
        )

    elif store_type == "null":
        return NullStore()

    else:
        raise ValueError(f"Unknown cache store: {store_type}")


__all__ = [
    "CacheStore",
    "TaggableCacheStore",
    "MemoryStore",
    "TaggedMemoryStore",
    "NullStore",
    "create_store",
]
