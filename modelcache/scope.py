"""
ModelCache — Entity metadata and tag scopes.

``ScopeRegistry`` resolves, once per entity class, the static metadata
the cache needs (type identifier, storage name, TTL and prefix
overrides) and the ``TagScope`` derived from it.

The registry is an explicit object owned by a ``ModelCache``; its maps
only grow and every value is idempotent to recompute, so concurrent
first lookups are harmless.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from .core import (
    CacheableQuerySource,
    EntityMetadata,
    QuerySpec,
    TagScope,
    default_storage_name,
    default_type_name,
    snake_case,
)

logger = logging.getLogger("modelcache.scope")

MetadataProvider = Callable[[type], EntityMetadata]

TYPE_TAG_PREFIX = "model:"
STORAGE_TAG_PREFIX = "table:"


def storage_tag(storage: str) -> str:
    return f"{STORAGE_TAG_PREFIX}{storage}"


def read_entity_metadata(model: type) -> EntityMetadata:
    """
    Default metadata provider.

    Classes implementing ``CacheableQuerySource`` supply their own type
    and storage names; any other class gets names derived from itself and
    is flagged as not cacheable.
    """
    if isinstance(model, CacheableQuerySource):
        return EntityMetadata(
            type_name=model.cache_type_name(),
            storage=model.cache_storage_name(),
            cache_minutes=getattr(model, "cache_minutes", None),
            cache_prefix=getattr(model, "cache_prefix", None),
            cacheable=True,
        )
    return EntityMetadata(
        type_name=default_type_name(model),
        storage=default_storage_name(model),
        cacheable=False,
    )


class ScopeRegistry:
    """
    Process-lifetime memo of entity metadata and tag scopes.

    Usage::

        registry = ScopeRegistry(global_tag="model_cache")
        scope = registry.scope_for(Post)
        scope.tags   # ("model_cache", "model:app.models.Post", "table:posts")
    """

    __slots__ = ("_global_tag", "_key_prefix", "_provider", "_metadata", "_by_type_name", "_scopes")

    def __init__(
        self,
        global_tag: str = "model_cache",
        key_prefix: str = "model_cache_",
        provider: Optional[MetadataProvider] = None,
    ):
        self._global_tag = global_tag
        self._key_prefix = key_prefix
        self._provider = provider or read_entity_metadata
        self._metadata: Dict[type, EntityMetadata] = {}
        self._by_type_name: Dict[str, EntityMetadata] = {}
        self._scopes: Dict[type, TagScope] = {}

    @property
    def global_tag(self) -> str:
        return self._global_tag

    def metadata_for(self, model: type) -> EntityMetadata:
        meta = self._metadata.get(model)
        if meta is None:
            meta = self._provider(model)
            self._metadata[model] = meta
            self._by_type_name[meta.type_name] = meta
            logger.debug(f"Resolved cache metadata for {meta.type_name} (storage={meta.storage})")
        return meta

    def scope_for(self, model: type) -> TagScope:
        scope = self._scopes.get(model)
        if scope is None:
            meta = self.metadata_for(model)
            scope = self._build_scope(meta.type_name, meta.storage)
            self._scopes[model] = scope
        return scope

    def scope_for_spec(self, spec: QuerySpec) -> TagScope:
        """Scope of the entity a spec was built for; identical to ``scope_for``."""
        return self._build_scope(spec.entity_type, spec.storage)

    def is_cacheable(self, model: type) -> bool:
        return self.metadata_for(model).cacheable

    def prefix_for(self, model: type) -> str:
        """Entity key prefix: its own ``cache_prefix`` or one derived from its name."""
        return self._prefix(self.metadata_for(model))

    def prefix_for_spec(self, spec: QuerySpec) -> str:
        meta = self._by_type_name.get(spec.entity_type)
        if meta is None:
            meta = EntityMetadata(type_name=spec.entity_type, storage=spec.storage)
        return self._prefix(meta)

    def minutes_for(self, model: type) -> Optional[int]:
        return self.metadata_for(model).cache_minutes

    def minutes_for_spec(self, spec: QuerySpec) -> Optional[int]:
        meta = self._by_type_name.get(spec.entity_type)
        return meta.cache_minutes if meta else None

    def _build_scope(self, type_name: str, storage: str) -> TagScope:
        return TagScope(
            global_tag=self._global_tag,
            type_tag=f"{TYPE_TAG_PREFIX}{type_name}",
            storage_tag=storage_tag(storage),
        )

    def _prefix(self, meta: EntityMetadata) -> str:
        if meta.cache_prefix:
            return meta.cache_prefix
        short_name = meta.type_name.rsplit(".", 1)[-1]
        return f"{self._key_prefix}{snake_case(short_name)}:"
