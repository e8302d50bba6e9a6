"""
ModelCache — High-level facade.

``ModelCache`` wires the configured store, serializer, fingerprinter,
scope registry, result cache, invalidation router and relationship
helpers into one object owned by the application:

    cache = create_model_cache(load_config())

    posts = await cache.query(Post, source).where("published", True).all()

    async with cache.invalidating(Post, WriteOperation.UPDATED):
        await source.update(spec, {"published": False})

Writes made outside ``CachedQuery`` report themselves through
``after_write`` (or the ``invalidating`` context manager), after the
storage write has completed.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional

from .config import ModelCacheConfig
from .core import (
    CacheStats,
    FlushStrategy,
    InvalidationEvent,
    QuerySpec,
    TagScope,
    WriteOperation,
)
from .debug import CacheDebugger
from .fingerprint import KeyFingerprinter
from .invalidation import InvalidationRouter
from .query import CachedQuery
from .relationships import RelationshipCacheBridge
from .result_cache import ResultCache
from .scope import MetadataProvider, ScopeRegistry
from .serializers import CacheSerializer, get_serializer
from .source import QuerySource
from .stores import CacheStore, create_store

logger = logging.getLogger("modelcache")


class ModelCache:
    """
    Query-result cache for entity classes.

    Usage::

        cache = ModelCache(config=ModelCacheConfig(store="memory"))

        # Cached reads
        rows = await cache.query(Post, source).order("-id").limit(10).all()
        rows = await cache.fetch(spec, lambda: source.select(spec))

        # Invalidation
        await cache.invalidate(Post)
        await cache.invalidate_storage("posts")
        await cache.after_write(Post, WriteOperation.CREATED, ids=[7])
    """

    __slots__ = (
        "_config",
        "_store",
        "_serializer",
        "_fingerprinter",
        "_registry",
        "_debugger",
        "_stats",
        "_results",
        "_router",
        "_relationships",
    )

    def __init__(
        self,
        config: Optional[ModelCacheConfig] = None,
        *,
        store: Optional[CacheStore] = None,
        serializer: Optional[CacheSerializer] = None,
        metadata_provider: Optional[MetadataProvider] = None,
        debug_logger: Optional[logging.Logger] = None,
    ):
        self._config = config or ModelCacheConfig()
        self._store = store or create_store(self._config)
        self._serializer = serializer or get_serializer(self._config.serializer)
        self._fingerprinter = KeyFingerprinter(hash_length=self._config.hash_length)
        self._registry = ScopeRegistry(
            global_tag=self._config.global_tag,
            key_prefix=self._config.key_prefix,
            provider=metadata_provider,
        )
        self._debugger = CacheDebugger(enabled=self._config.debug_mode, logger=debug_logger)
        self._stats = CacheStats()
        self._results = ResultCache(
            self._store,
            self._registry,
            fingerprinter=self._fingerprinter,
            serializer=self._serializer,
            default_minutes=self._config.cache_minutes,
            enabled=self._config.enabled,
            debugger=self._debugger,
            stats=self._stats,
        )
        self._router = InvalidationRouter(
            self._store,
            self._registry,
            debugger=self._debugger,
            stats=self._stats,
        )
        self._relationships = RelationshipCacheBridge(self._router, self._registry, self._debugger)

    # ── Accessors ────────────────────────────────────────────────────

    @property
    def config(self) -> ModelCacheConfig:
        return self._config

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def registry(self) -> ScopeRegistry:
        return self._registry

    @property
    def router(self) -> InvalidationRouter:
        return self._router

    @property
    def results(self) -> ResultCache:
        return self._results

    @property
    def stats(self) -> CacheStats:
        return self._stats

    # ── Reads ────────────────────────────────────────────────────────

    def query(self, model: type, source: QuerySource) -> CachedQuery:
        """Start a cached query chain for ``model`` against ``source``."""
        return CachedQuery(model, self, source)

    async def fetch(
        self,
        spec: QuerySpec,
        executor: Callable[[], Any],
        ttl: Optional[int] = None,
    ) -> Any:
        """Read-through fetch of one query result (``ttl`` in minutes)."""
        return await self._results.fetch(spec, executor, ttl=ttl)

    async def forget(self, spec: QuerySpec) -> bool:
        return await self._results.forget(spec)

    def key_for(self, spec: QuerySpec) -> str:
        return self._results.key_for(spec)

    def scope_for(self, model: type) -> TagScope:
        return self._registry.scope_for(model)

    # ── Invalidation ─────────────────────────────────────────────────

    async def invalidate(self, model: type) -> bool:
        """Flush every cached query of ``model``. Never raises on store failure."""
        return await self._router.invalidate(model)

    async def flush(self, model: type) -> FlushStrategy:
        return await self._router.flush(model)

    async def invalidate_storage(self, storage: str) -> bool:
        """Flush every entity type mapped to physical storage ``storage``."""
        return await self._router.invalidate_storage(storage)

    async def flush_all_scopes(self) -> FlushStrategy:
        return await self._router.flush_all_scopes()

    async def after_write(
        self,
        model: type,
        operation: WriteOperation,
        ids: Optional[Iterable[Any]] = None,
    ) -> bool:
        """
        Post-commit callback for the write path.

        Call once the storage write has completed; the entity's scope is
        invalidated whatever ``ids`` contains.
        """
        event = InvalidationEvent(
            entity_type=model,
            operation=WriteOperation(operation),
            ids=tuple(ids or ()),
        )
        return await self._router.record(event)

    @asynccontextmanager
    async def invalidating(
        self,
        model: type,
        operation: WriteOperation = WriteOperation.UPDATED,
        ids: Optional[Iterable[Any]] = None,
    ) -> AsyncIterator[None]:
        """
        Run a write and invalidate ``model`` once it completes.

        If the body raises, nothing is invalidated and the error propagates.

        Usage::

            async with cache.invalidating(Post, WriteOperation.DELETED, ids=[post_id]):
                await db.execute("DELETE FROM posts WHERE id = ?", [post_id])
        """
        yield
        await self.after_write(model, operation, ids)

    # ── Relationships ────────────────────────────────────────────────

    async def attach_and_flush(self, owner: Any, relation: str, ids: Any, attributes: Optional[Dict[str, Any]] = None) -> None:
        await self._relationships.attach_and_flush(owner, relation, ids, attributes)

    async def detach_and_flush(self, owner: Any, relation: str, ids: Any = None) -> int:
        return await self._relationships.detach_and_flush(owner, relation, ids)

    async def sync_and_flush(self, owner: Any, relation: str, ids: Any, detaching: bool = True) -> Dict[str, List[Any]]:
        return await self._relationships.sync_and_flush(owner, relation, ids, detaching)

    # ── Lifecycle ────────────────────────────────────────────────────

    async def shutdown(self) -> None:
        await self._store.shutdown()

    def __repr__(self) -> str:
        return f"<ModelCache store={self._store.name} enabled={self._config.enabled}>"


def create_model_cache(config: Optional[ModelCacheConfig] = None) -> ModelCache:
    """
    Factory: create a ModelCache from configuration.

    Args:
        config: ModelCacheConfig instance (defaults when None)

    Returns:
        Configured ModelCache
    """
    config = config or ModelCacheConfig()
    cache = ModelCache(config=config)
    logger.debug(f"Model cache created (store={cache.store.name}, serializer={config.serializer})")
    return cache
