"""
ModelCache — Read-through result cache.

``ResultCache.fetch`` memoizes one materialized query result per
``QuerySpec``:

- hit  → deserialize and return, executor is not called
- miss → call executor, store once under the entity's tags, return
- store failure → degrade to direct execution, never raise
- TTL of zero or less → execute, never store

Executor exceptions are data-retrieval failures and propagate unchanged;
nothing is stored for them.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from .core import CacheStats, QuerySpec
from .debug import CacheDebugger
from .faults import CacheBackendFault, CacheSerializationFault
from .fingerprint import KeyFingerprinter
from .scope import ScopeRegistry
from .serializers import CacheSerializer, PickleCacheSerializer
from .source import resolve
from .stores.base import CacheStore

logger = logging.getLogger("modelcache.result_cache")

Executor = Callable[[], Any]


class ResultCache:
    """
    Read-through cache for query results.

    Usage::

        rows = await result_cache.fetch(spec, lambda: source.select(spec))
        rows = await result_cache.fetch(spec, executor, ttl=5)   # minutes
    """

    __slots__ = (
        "_store",
        "_registry",
        "_fingerprinter",
        "_serializer",
        "_default_minutes",
        "_enabled",
        "_debugger",
        "_stats",
    )

    def __init__(
        self,
        store: CacheStore,
        registry: ScopeRegistry,
        *,
        fingerprinter: Optional[KeyFingerprinter] = None,
        serializer: Optional[CacheSerializer] = None,
        default_minutes: int = 60,
        enabled: bool = True,
        debugger: Optional[CacheDebugger] = None,
        stats: Optional[CacheStats] = None,
    ):
        self._store = store
        self._registry = registry
        self._fingerprinter = fingerprinter or KeyFingerprinter()
        self._serializer = serializer or PickleCacheSerializer()
        self._default_minutes = default_minutes
        self._enabled = enabled
        self._debugger = debugger or CacheDebugger()
        self._stats = stats or CacheStats()

    @property
    def stats(self) -> CacheStats:
        return self._stats

    @property
    def enabled(self) -> bool:
        return self._enabled

    def key_for(self, spec: QuerySpec) -> str:
        """Cache key for ``spec`` under its entity's prefix."""
        return self._fingerprinter.fingerprint(spec, self._registry.prefix_for_spec(spec))

    def ttl_seconds_for(self, spec: QuerySpec, ttl: Optional[int] = None) -> int:
        """Override, else the entity's ``cache_minutes``, else the global default."""
        minutes = ttl if ttl is not None else self._registry.minutes_for_spec(spec)
        if minutes is None:
            minutes = self._default_minutes
        return minutes * 60

    async def fetch(self, spec: QuerySpec, executor: Executor, ttl: Optional[int] = None) -> Any:
        """
        Return the cached result for ``spec``, computing it on a miss.

        Args:
            spec: Query description
            executor: Zero-argument callable (sync or async) running the query
            ttl: TTL override in minutes

        Returns:
            Cached or freshly computed result
        """
        if not self._enabled:
            return await resolve(executor())

        key = self.key_for(spec)

        try:
            raw = await self._store.get(key)
        except Exception as e:
            self._backend_error("get", e)
            return await resolve(executor())

        if raw is not None:
            try:
                value = self._serializer.deserialize(raw)
            except Exception as e:
                self._serialization_error(key, "deserialize", e)
                await self._discard(key)
            else:
                self._stats.hits += 1
                self._debugger.debug("Cache hit for %s (%s)", spec.entity_type, key)
                return value

        self._stats.misses += 1
        self._debugger.debug("Cache miss for %s (%s)", spec.entity_type, key)

        result = await resolve(executor())
        await self._remember(spec, key, result, ttl)
        return result

    async def forget(self, spec: QuerySpec) -> bool:
        """Remove the single cached entry for ``spec``."""
        try:
            return await self._store.forget(self.key_for(spec))
        except Exception as e:
            self._backend_error("forget", e)
            return False

    async def _remember(self, spec: QuerySpec, key: str, result: Any, ttl: Optional[int]) -> None:
        seconds = self.ttl_seconds_for(spec, ttl)
        if seconds <= 0:
            # Stores read a non-positive TTL as "never expires"
            self._debugger.debug("Not caching %s, TTL of %s seconds", key, seconds)
            await self._discard(key)
            return

        try:
            payload = self._serializer.serialize(result)
        except Exception as e:
            self._serialization_error(key, "serialize", e)
            return

        tags = self._registry.scope_for_spec(spec).tags
        try:
            await self._store.put(key, payload, ttl=seconds, tags=tags)
        except Exception as e:
            self._backend_error("put", e)
            return
        self._stats.writes += 1

    async def _discard(self, key: str) -> None:
        try:
            await self._store.forget(key)
        except Exception as e:
            self._backend_error("forget", e)

    def _backend_error(self, operation: str, error: Exception) -> None:
        self._stats.errors += 1
        fault = error if isinstance(error, CacheBackendFault) else CacheBackendFault(
            backend=self._store.name,
            operation=operation,
            reason=str(error),
        )
        logger.warning(f"Cache {operation} failed, result not cached: {fault}")
        self._debugger.error("Cache store error: %s", fault.to_dict())

    def _serialization_error(self, key: str, operation: str, error: Exception) -> None:
        self._stats.errors += 1
        fault = CacheSerializationFault(key=key, operation=operation, reason=str(error))
        logger.warning(str(fault))
