"""
ModelCache — Redis store for shared caches.

Keys live under ``key_prefix``; every tag is a Redis set of the full
keys carrying it (``{prefix}_tags:{tag}``), and every entry records its
own tags (``{prefix}_entry:{key}``). Tag flush intersects the tag sets
(SINTER) so only entries carrying all requested tags are removed, then
drops those keys from every tag set they belonged to.

Transport errors are raised as ``CacheBackendFault``; ResultCache and
InvalidationRouter catch them and degrade.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from ..faults import CacheBackendFault, CacheCapabilityFault
from .base import TaggableCacheStore

logger = logging.getLogger("modelcache.stores.redis")


def _text(value: Union[str, bytes]) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class RedisStore(TaggableCacheStore):
    """
    Redis-backed store using redis-py's asyncio client.

    The connection is opened lazily on first use.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        socket_timeout: float = 5.0,
        key_prefix: str = "mcache:",
        client: Optional[Any] = None,
    ):
        self._url = url
        self._socket_timeout = socket_timeout
        self._key_prefix = key_prefix
        self._redis = client

    @property
    def name(self) -> str:
        return "redis"

    @property
    def url(self) -> str:
        return self._url

    async def initialize(self) -> None:
        """Create the client and verify the connection."""
        if self._redis is not None:
            return

        try:
            import redis.asyncio as aioredis
        except ImportError:
            raise ImportError(
                "Redis store requires 'redis' package. "
                "Install with: pip install modelcache[redis]"
            )

        client = aioredis.from_url(
            self._url,
            socket_timeout=self._socket_timeout,
            socket_connect_timeout=self._socket_timeout,
            decode_responses=False,
        )
        try:
            await client.ping()
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise CacheBackendFault(self.name, "connect", str(e)) from e
        self._redis = client
        logger.info(f"Redis cache connected: {self._url}")

    async def shutdown(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    def _full_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def _tag_set_key(self, tag: str) -> str:
        return f"{self._key_prefix}_tags:{tag}"

    def _entry_tags_key(self, full_key: str) -> str:
        return f"{self._key_prefix}_entry:{full_key}"

    async def _client(self) -> Any:
        if self._redis is None:
            await self.initialize()
        return self._redis

    async def get(self, key: str) -> Optional[bytes]:
        client = await self._client()
        try:
            return await client.get(self._full_key(key))
        except Exception as e:
            raise CacheBackendFault(self.name, "get", str(e)) from e

    async def put(
        self,
        key: str,
        value: bytes,
        ttl: Optional[int] = None,
        tags: Tuple[str, ...] = (),
    ) -> None:
        client = await self._client()
        full_key = self._full_key(key)
        try:
            pipe = client.pipeline()
            if ttl and ttl > 0:
                pipe.setex(full_key, ttl, value)
            else:
                pipe.set(full_key, value)
            for tag in tags:
                tag_key = self._tag_set_key(tag)
                pipe.sadd(tag_key, full_key)
                if ttl and ttl > 0:
                    pipe.expire(tag_key, ttl + 60)
            if tags:
                entry_key = self._entry_tags_key(full_key)
                pipe.delete(entry_key)
                pipe.sadd(entry_key, *tags)
                if ttl and ttl > 0:
                    pipe.expire(entry_key, ttl)
            await pipe.execute()
        except Exception as e:
            raise CacheBackendFault(self.name, "put", str(e)) from e

    async def forget(self, key: str) -> bool:
        client = await self._client()
        full_key = self._full_key(key)
        try:
            # Tag sets still list the key; flush_tags tolerates stale members
            return bool(await client.delete(full_key, self._entry_tags_key(full_key)))
        except Exception as e:
            raise CacheBackendFault(self.name, "forget", str(e)) from e

    async def flush(self) -> bool:
        """Delete every key under the prefix, tag sets included."""
        client = await self._client()
        count = 0
        try:
            async for batch in self._scan_batches(client, f"{self._key_prefix}*"):
                await client.delete(*batch)
                count += len(batch)
        except Exception as e:
            raise CacheBackendFault(self.name, "flush", str(e)) from e
        logger.debug(f"Flushed {count} Redis keys under '{self._key_prefix}'")
        return True

    async def flush_tags(self, tags: Iterable[str]) -> bool:
        tag_keys = [self._tag_set_key(tag) for tag in tags]
        if not tag_keys:
            return True
        client = await self._client()
        try:
            members = [_text(m) for m in await client.sinter(tag_keys)]
            if members:
                await self._delete_tagged(client, members, tag_keys)
        except Exception as e:
            # Redis Cluster rejects SINTER across hash slots
            if "CROSSSLOT" in str(e):
                raise CacheCapabilityFault(self.name, "multi-key tag flush") from e
            raise CacheBackendFault(self.name, "flush_tags", str(e)) from e
        logger.debug(f"Redis tag flush removed {len(members)} keys")
        return True

    async def _delete_tagged(self, client: Any, members: List[str], tag_keys: List[str]) -> None:
        """Delete ``members`` and remove them from every tag set they carry."""
        read = client.pipeline()
        for member in members:
            read.smembers(self._entry_tags_key(member))
        carried = await read.execute()

        owners: Dict[str, List[str]] = defaultdict(list)
        for tag_key in tag_keys:
            owners[tag_key] = list(members)
        for member, tags in zip(members, carried):
            for tag in tags or ():
                tag_key = self._tag_set_key(_text(tag))
                if member not in owners[tag_key]:
                    owners[tag_key].append(member)

        pipe = client.pipeline()
        pipe.delete(*members, *(self._entry_tags_key(m) for m in members))
        for tag_key, keys in owners.items():
            pipe.srem(tag_key, *keys)
        await pipe.execute()

    @staticmethod
    async def _scan_batches(client: Any, match: str):
        cursor = 0
        while True:
            cursor, keys = await client.scan(cursor=cursor, match=match, count=1000)
            if keys:
                yield keys
            if cursor == 0:
                break
