"""
ModelCache — Async query-result caching for entity classes.

Memoizes read queries under deterministic keys and invalidates exactly
the affected entries when data changes:
- **Fingerprinting**: SHA-256 keys over a canonical query description
- **Tag scopes**: global / entity-type / storage tags per entity class
- **Two-tier invalidation**: tag flush, falling back to a full flush
- **Degradation**: store failures never break reads or writes
- **Query builder**: chainable ``CachedQuery`` with cached terminals and
  invalidating writes
- **Stores**: tagged memory, plain memory, Redis, null
- **CLI**: ``mcache flush [MODEL]``, ``mcache check``, ``mcache inspect``

Usage::

    from modelcache import Cacheable, create_model_cache, load_config

    class Post(Cacheable):
        table_name = "posts"
        cache_minutes = 30

    cache = create_model_cache(load_config())

    posts = await cache.query(Post, source).where("published", True).all()
    await cache.query(Post, source).where("id", 1).update(published=False)
"""

__version__ = "1.0.0"

from .core import (
    Cacheable,
    CacheableQuerySource,
    CacheStats,
    EntityMetadata,
    FlushStrategy,
    InvalidationEvent,
    Ordering,
    Predicate,
    QuerySpec,
    SelectShape,
    TagScope,
    WriteOperation,
)

from .config import ModelCacheConfig, build_config, load_config

from .faults import (
    ModelCacheFault,
    CacheBackendFault,
    CacheCapabilityFault,
    CacheSerializationFault,
    CacheConfigFault,
    RelationNotFoundFault,
    ScopeNotFoundFault,
    RecordNotFoundFault,
)

from .fingerprint import KeyFingerprinter
from .scope import ScopeRegistry
from .result_cache import ResultCache
from .invalidation import InvalidationRouter
from .relationships import RelationshipCacheBridge
from .query import CachedQuery, Page
from .source import PivotRelation, QuerySource

from .stores import (
    CacheStore,
    TaggableCacheStore,
    MemoryStore,
    TaggedMemoryStore,
    NullStore,
    create_store,
)

from .serializers import (
    JsonCacheSerializer,
    PickleCacheSerializer,
    MsgpackCacheSerializer,
)

from .service import ModelCache, create_model_cache

__all__ = [
    # Core types
    "Cacheable",
    "CacheableQuerySource",
    "CacheStats",
    "EntityMetadata",
    "FlushStrategy",
    "InvalidationEvent",
    "Ordering",
    "Predicate",
    "QuerySpec",
    "SelectShape",
    "TagScope",
    "WriteOperation",
    # Config
    "ModelCacheConfig",
    "build_config",
    "load_config",
    # Faults
    "ModelCacheFault",
    "CacheBackendFault",
    "CacheCapabilityFault",
    "CacheSerializationFault",
    "CacheConfigFault",
    "RelationNotFoundFault",
    "ScopeNotFoundFault",
    "RecordNotFoundFault",
    # Engine
    "KeyFingerprinter",
    "ScopeRegistry",
    "ResultCache",
    "InvalidationRouter",
    "RelationshipCacheBridge",
    "CachedQuery",
    "Page",
    "PivotRelation",
    "QuerySource",
    # Stores
    "CacheStore",
    "TaggableCacheStore",
    "MemoryStore",
    "TaggedMemoryStore",
    "NullStore",
    "create_store",
    # Serializers
    "JsonCacheSerializer",
    "PickleCacheSerializer",
    "MsgpackCacheSerializer",
    # Facade
    "ModelCache",
    "create_model_cache",
]
