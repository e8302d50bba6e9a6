"""
ModelCache — Core types and protocols.

Defines the immutable query description (``QuerySpec``), invalidation
vocabulary (``WriteOperation``, ``InvalidationEvent``, ``TagScope``) and
the ``CacheableQuerySource`` interface that entity classes implement to
take part in the cache scope.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    FrozenSet,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)


# ============================================================================
# Query description
# ============================================================================

OPERATORS = frozenset({
    "=", "!=", "<", "<=", ">", ">=",
    "in", "not in", "like", "between",
    "is null", "is not null",
})


@dataclass(frozen=True, slots=True)
class Predicate:
    """One WHERE clause: ``column operator value``, joined by ``boolean``."""
    column: str
    operator: str = "="
    value: Any = None
    boolean: str = "and"     # "and", "or", "and not"

    def __post_init__(self) -> None:
        if self.operator not in OPERATORS:
            raise ValueError(f"Unsupported operator: {self.operator!r}")


@dataclass(frozen=True, slots=True)
class Ordering:
    """ORDER BY clause. ``column == "?"`` means random order."""
    column: str
    descending: bool = False


@dataclass(frozen=True, slots=True)
class SelectShape:
    """
    What a query returns.

    ``aggregate`` is one of ``count``, ``sum``, ``avg``, ``min``, ``max``,
    ``exists``, ``first``, ``pluck`` or None for a plain row fetch.
    """
    columns: Tuple[str, ...] = ("*",)
    aggregate: Optional[str] = None
    aggregate_column: Optional[str] = None


@dataclass(frozen=True, slots=True)
class QuerySpec:
    """
    Immutable description of one logical read query.

    Constructed fresh per query and consumed immediately. Clause tuples
    keep insertion order; eager-load and scope sets are unordered.
    """
    entity_type: str
    storage: str
    predicates: Tuple[Predicate, ...] = ()
    orderings: Tuple[Ordering, ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None
    cursor: Optional[Tuple[str, Any]] = None
    eager_load: FrozenSet[str] = frozenset()
    eager_exclude: FrozenSet[str] = frozenset()
    scopes: FrozenSet[str] = frozenset()
    select: SelectShape = field(default_factory=SelectShape)
    distinct: bool = False

    @property
    def relations(self) -> FrozenSet[str]:
        """Effective eager-load set after exclusions."""
        return self.eager_load - self.eager_exclude

    def with_select(self, select: SelectShape, **changes: Any) -> QuerySpec:
        """Copy of this spec with a different select shape."""
        return replace(self, select=select, **changes)


# ============================================================================
# Invalidation vocabulary
# ============================================================================

class WriteOperation(str, Enum):
    """Kinds of writes that invalidate an entity scope."""
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    RESTORED = "restored"
    MASS_UPDATED = "mass-updated"
    MASS_DELETED = "mass-deleted"
    INSERTED = "inserted"
    UPSERTED = "upserted"
    INCREMENTED = "incremented"
    DECREMENTED = "decremented"
    TRUNCATED = "truncated"
    FORCE_DELETED = "force-deleted"
    PIVOT_ATTACHED = "pivot-attached"
    PIVOT_DETACHED = "pivot-detached"
    PIVOT_SYNCED = "pivot-synced"


@dataclass(frozen=True, slots=True)
class InvalidationEvent:
    """
    A write that happened against ``entity_type``.

    ``ids`` is informational only: invalidation is always scope-wide.
    """
    entity_type: type
    operation: WriteOperation
    ids: Tuple[Any, ...] = ()


class FlushStrategy(str, Enum):
    """Which invalidation strategy ran."""
    TAGS = "tags"
    FULL = "full"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class TagScope:
    """Invalidation tags for one entity type."""
    global_tag: str
    type_tag: str
    storage_tag: str

    @property
    def tags(self) -> Tuple[str, str, str]:
        return (self.global_tag, self.type_tag, self.storage_tag)


@dataclass(frozen=True, slots=True)
class EntityMetadata:
    """Static cache metadata resolved once per entity class."""
    type_name: str
    storage: str
    cache_minutes: Optional[int] = None
    cache_prefix: Optional[str] = None
    cacheable: bool = True


# ============================================================================
# Cache statistics
# ============================================================================

@dataclass
class CacheStats:
    """Counters for observability."""
    hits: int = 0
    misses: int = 0
    writes: int = 0
    errors: int = 0
    tag_flushes: int = 0
    full_flushes: int = 0
    failed_flushes: int = 0
    started_at: float = field(default_factory=time.monotonic)

    @property
    def hit_rate(self) -> float:
        """Hit rate as a percentage."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits / total) * 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "writes": self.writes,
            "errors": self.errors,
            "tag_flushes": self.tag_flushes,
            "full_flushes": self.full_flushes,
            "failed_flushes": self.failed_flushes,
            "hit_rate": round(self.hit_rate, 2),
            "uptime_seconds": round(time.monotonic() - self.started_at, 2),
        }


# ============================================================================
# Entity interface
# ============================================================================

@runtime_checkable
class CacheableQuerySource(Protocol):
    """
    Interface an entity-like class implements to join the cache scope.

    ResultCache and InvalidationRouter depend only on this interface,
    never on concrete entity types. Optional class attributes read by the
    metadata provider: ``cache_minutes``, ``cache_prefix``.
    """

    @classmethod
    def cache_type_name(cls) -> str:
        ...

    @classmethod
    def cache_storage_name(cls) -> str:
        ...


_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def snake_case(name: str) -> str:
    """``PostWithCustomCache`` → ``post_with_custom_cache``."""
    return _CAMEL_RE.sub("_", name).lower()


def pluralize(word: str) -> str:
    """Naive English plural used for default table names."""
    if word.endswith("y") and len(word) > 1 and word[-2] not in "aeiou":
        return word[:-1] + "ies"
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    return word + "s"


def default_type_name(model: type) -> str:
    return f"{model.__module__}.{model.__qualname__}"


def default_storage_name(model: type) -> str:
    table = getattr(model, "table_name", None)
    if table:
        return table
    return pluralize(snake_case(model.__name__))


class Cacheable:
    """
    Mixin giving an entity class default ``CacheableQuerySource`` behaviour.

    Usage::

        class Post(Cacheable):
            table_name = "posts"
            cache_minutes = 120
            cache_prefix = "custom_post_"
            eager_load = ("tags",)
            soft_deletes = True
    """

    table_name: ClassVar[Optional[str]] = None
    cache_minutes: ClassVar[Optional[int]] = None
    cache_prefix: ClassVar[Optional[str]] = None
    eager_load: ClassVar[Tuple[str, ...]] = ()
    global_scopes: ClassVar[Dict[str, Callable[[Any], Any]]] = {}
    soft_deletes: ClassVar[bool] = False
    deleted_at_column: ClassVar[str] = "deleted_at"
    primary_key: ClassVar[str] = "id"

    @classmethod
    def cache_type_name(cls) -> str:
        return default_type_name(cls)

    @classmethod
    def cache_storage_name(cls) -> str:
        return default_storage_name(cls)
