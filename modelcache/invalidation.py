"""
ModelCache — Invalidation routing.

Maps writes to cache flushes using a two-tier strategy:

1. Tag flush of the entity's scope when the store is taggable.
2. Full store flush when tags are unsupported or the tag flush fails.

Entries are removed when they carry *all* flushed tags, so flushing an
entity's full scope never touches entries of unrelated entities, while
flushing only a storage tag reaches every type aliasing that storage.
Recorded writes flush by storage tag; manual ``invalidate`` flushes the
entity's full scope. The full-flush fallback clears every entity and
gives no isolation.

Invalidation never raises into the write path: every store error is
logged and reported as ``FlushStrategy.FAILED`` / ``False``.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from .core import CacheStats, FlushStrategy, InvalidationEvent
from .debug import CacheDebugger
from .faults import CacheBackendFault, CacheCapabilityFault
from .scope import ScopeRegistry, storage_tag
from .stores.base import CacheStore, TaggableCacheStore

logger = logging.getLogger("modelcache.invalidation")


class InvalidationRouter:
    """
    Flushes cache scopes after writes.

    Usage::

        router = InvalidationRouter(store, registry)
        await router.invalidate(Post)            # True on tag or full flush
        strategy = await router.flush(Post)      # FlushStrategy.TAGS
        await router.invalidate_storage("posts") # every alias of "posts"
    """

    __slots__ = ("_store", "_registry", "_taggable", "_debugger", "_stats")

    def __init__(
        self,
        store: CacheStore,
        registry: ScopeRegistry,
        *,
        debugger: Optional[CacheDebugger] = None,
        stats: Optional[CacheStats] = None,
    ):
        self._store = store
        self._registry = registry
        # Capability is fixed for the lifetime of the router
        self._taggable = isinstance(store, TaggableCacheStore)
        self._debugger = debugger or CacheDebugger()
        self._stats = stats or CacheStats()

    @property
    def supports_tags(self) -> bool:
        return self._taggable

    @property
    def stats(self) -> CacheStats:
        return self._stats

    async def flush(self, model: type) -> FlushStrategy:
        """Flush one entity's scope and report which strategy ran."""
        label = getattr(model, "__qualname__", repr(model))
        try:
            tags = self._registry.scope_for(model).tags
        except Exception as e:
            logger.warning(f"Cannot resolve cache scope for {label}: {e}")
            self._stats.failed_flushes += 1
            return FlushStrategy.FAILED
        return await self._flush_tags(tags, f"model: {label}")

    async def flush_written(self, model: type) -> FlushStrategy:
        """
        Flush after a write to ``model``'s storage.

        The write changed the underlying rows, so every type aliasing the
        same storage is flushed along with ``model`` itself.
        """
        label = getattr(model, "__qualname__", repr(model))
        try:
            tag = self._registry.scope_for(model).storage_tag
        except Exception as e:
            logger.warning(f"Cannot resolve cache scope for {label}: {e}")
            self._stats.failed_flushes += 1
            return FlushStrategy.FAILED
        return await self._flush_tags((tag,), f"model: {label}")

    async def invalidate(self, model: type) -> bool:
        """Flush one entity's scope. Returns False only when nothing could be flushed."""
        return await self.flush(model) is not FlushStrategy.FAILED

    async def invalidate_storage(self, storage: str) -> bool:
        """Flush every entity type mapped to physical storage ``storage``."""
        strategy = await self._flush_tags((storage_tag(storage),), f"storage: {storage}")
        return strategy is not FlushStrategy.FAILED

    async def flush_all_scopes(self) -> FlushStrategy:
        """Flush every model entry via the global tag, else the whole store."""
        return await self._flush_tags((self._registry.global_tag,), "all models")

    async def record(self, event: InvalidationEvent) -> bool:
        """Invalidate the storage an event was written against."""
        result = await self.flush_written(event.entity_type) is not FlushStrategy.FAILED
        self._debugger.info(
            "Cache flushed after %s for model: %s",
            event.operation.value,
            event.entity_type.__qualname__,
        )
        return result

    async def _flush_tags(self, tags: Sequence[str], label: str) -> FlushStrategy:
        try:
            if self._taggable:
                try:
                    if await self._store.flush_tags(tags):
                        self._stats.tag_flushes += 1
                        self._debugger.info("Cache flushed with tags %s for %s", list(tags), label)
                        return FlushStrategy.TAGS
                    logger.warning(f"Tag flush for {label} reported failure, flushing entire store")
                except CacheCapabilityFault as e:
                    logger.debug(f"{e.message}, flushing entire store for {label}")
                except Exception as e:
                    logger.warning(f"Tag flush for {label} failed, flushing entire store: {e}")
                    self._debugger.error("Error flushing cache with tags for %s: %s", label, e)

            if await self._store.flush():
                self._stats.full_flushes += 1
                self._debugger.info("Entire cache flushed for %s", label)
                return FlushStrategy.FULL

            logger.warning(f"Full cache flush for {label} reported failure")
        except Exception as e:
            fault = e if isinstance(e, CacheBackendFault) else CacheBackendFault(
                backend=self._store.name,
                operation="flush",
                reason=str(e),
            )
            logger.warning(f"Cache invalidation for {label} failed: {fault}")
            self._debugger.error("Error flushing cache for %s: %s", label, fault.to_dict())

        self._stats.failed_flushes += 1
        return FlushStrategy.FAILED
