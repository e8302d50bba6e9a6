"""
ModelCache — Cached query builder.

``CachedQuery`` is a chainable, immutable, async-terminal builder bound
to one entity class. Every chain method returns a NEW instance; terminal
read methods build a ``QuerySpec`` and go through the result cache, and
write methods run against the ``QuerySource`` and invalidate the
entity's scope once the source reports completion.

Usage:
    posts = await cache.query(Post, source).where("published", True).order("-id").all()
    total = await cache.query(Post, source).filter(views__gte=100).count()
    await cache.query(Post, source).where("id", 1).update(published=False)
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, replace
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncIterator,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

from .core import Ordering, Predicate, QuerySpec, SelectShape, WriteOperation
from .faults import RecordNotFoundFault
from .source import QuerySource, resolve

if TYPE_CHECKING:
    from .service import ModelCache

__all__ = ["CachedQuery", "Page"]

_MISSING = object()

SOFT_DELETE_SCOPE = "soft_deletes"
ONLY_TRASHED_SCOPE = "only_trashed"

# ``filter(field__suffix=value)`` lookups
_LOOKUPS: Dict[str, str] = {
    "exact": "=",
    "ne": "!=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "in": "in",
    "nin": "not in",
    "like": "like",
    "range": "between",
}


def _lookup_predicate(key: str, value: Any, boolean: str) -> Predicate:
    """Convert a ``field__lookup=value`` pair to a Predicate."""
    if "__" not in key:
        return Predicate(key, "=", value, boolean)
    column, _, suffix = key.rpartition("__")
    if suffix in _LOOKUPS:
        operator = _LOOKUPS[suffix]
        if operator in ("in", "not in", "between"):
            value = tuple(value)
        return Predicate(column, operator, value, boolean)
    if suffix == "contains":
        return Predicate(column, "like", f"%{value}%", boolean)
    if suffix == "startswith":
        return Predicate(column, "like", f"{value}%", boolean)
    if suffix == "endswith":
        return Predicate(column, "like", f"%{value}", boolean)
    if suffix == "isnull":
        return Predicate(column, "is null" if value else "is not null", None, boolean)
    raise ValueError(f"Unsupported lookup: {key!r}")


def _row_value(row: Any, column: str) -> Any:
    if isinstance(row, Mapping):
        return row.get(column)
    return getattr(row, column, None)


@dataclass
class Page:
    """One page of results from ``CachedQuery.paginate``."""
    items: List[Any]
    total: int
    per_page: int
    current_page: int

    @property
    def last_page(self) -> int:
        if self.total == 0:
            return 1
        return (self.total + self.per_page - 1) // self.per_page

    @property
    def has_more_pages(self) -> bool:
        return self.current_page < self.last_page

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": self.items,
            "total": self.total,
            "per_page": self.per_page,
            "current_page": self.current_page,
            "last_page": self.last_page,
        }


class CachedQuery:
    """
    Cached query builder — chainable, immutable, async-terminal.

    Chain methods (return new CachedQuery):
        where(column, [operator], value)  — AND clause
        or_where(column, [operator], value)
        where_in / where_not_in / where_null / where_not_null / where_between
        filter(**lookups) / exclude(**lookups)  — ``field__gt`` style
        order(*fields)             — "-field" for DESC, "?" for random
        limit(n) / offset(n) / [a:b]
        seek(column, value)        — keyset cursor
        distinct() / only(*columns)
        prefetch_related(*names) / without_related(*names)
        scope(name, *args)         — model ``scope_<name>`` method
        without_global_scope(name) / without_global_scopes()
        with_trashed() / only_trashed()
        ttl(minutes)               — cache duration override

    Cached terminal reads:
        all() / get(), first(), find(id), find_or_fail(id), count(),
        sum/avg/min/max(column), exists(), pluck(column),
        paginate(per_page, page), chunk(size)

    Writes (invalidate after success):
        create, update, delete, insert, insert_get_id, insert_or_ignore,
        update_or_insert, upsert, truncate, increment, decrement,
        force_delete, restore
    """

    __slots__ = (
        "_model",
        "_cache",
        "_source",
        "_predicates",
        "_orderings",
        "_limit_val",
        "_offset_val",
        "_cursor",
        "_eager",
        "_eager_exclude",
        "_scope_names",
        "_removed_scopes",
        "_without_all_scopes",
        "_trashed",
        "_columns",
        "_distinct",
        "_ttl_minutes",
        "_scopes_applied",
    )

    def __init__(self, model: type, cache: ModelCache, source: QuerySource):
        self._model = model
        self._cache = cache
        self._source = source
        self._predicates: List[Predicate] = []
        self._orderings: List[Ordering] = []
        self._limit_val: Optional[int] = None
        self._offset_val: Optional[int] = None
        self._cursor: Optional[Tuple[str, Any]] = None
        self._eager: List[str] = list(getattr(model, "eager_load", ()) or ())
        self._eager_exclude: List[str] = []
        self._scope_names: List[str] = []
        self._removed_scopes: Set[str] = set()
        self._without_all_scopes = False
        self._trashed = "exclude"        # "exclude", "with", "only"
        self._columns: Tuple[str, ...] = ("*",)
        self._distinct = False
        self._ttl_minutes: Optional[int] = None
        self._scopes_applied = False

    @property
    def model(self) -> type:
        return self._model

    # ── Chain methods (return new CachedQuery) ───────────────────────

    def where(self, column: Any, operator: Any = _MISSING, value: Any = _MISSING) -> CachedQuery:
        """
        Add an AND clause.

        Usage:
            .where("published", True)
            .where("views", ">", 100)
            .where({"published": True, "author_id": 3})
        """
        return self._add_where(column, operator, value, "and")

    def or_where(self, column: Any, operator: Any = _MISSING, value: Any = _MISSING) -> CachedQuery:
        return self._add_where(column, operator, value, "or")

    def where_in(self, column: str, values: Sequence[Any]) -> CachedQuery:
        return self._push(Predicate(column, "in", tuple(values)))

    def where_not_in(self, column: str, values: Sequence[Any]) -> CachedQuery:
        return self._push(Predicate(column, "not in", tuple(values)))

    def where_null(self, column: str) -> CachedQuery:
        return self._push(Predicate(column, "is null"))

    def where_not_null(self, column: str) -> CachedQuery:
        return self._push(Predicate(column, "is not null"))

    def where_between(self, column: str, low: Any, high: Any) -> CachedQuery:
        return self._push(Predicate(column, "between", (low, high)))

    def filter(self, **lookups: Any) -> CachedQuery:
        """
        Django-style field lookups.

        Supports: exact, ne, gt, gte, lt, lte, in, nin, like, range,
        contains, startswith, endswith, isnull.

        Usage:
            .filter(published=True, views__gt=10)
            .filter(title__startswith="Intro")
        """
        new = self._clone()
        for key, value in lookups.items():
            new._predicates.append(_lookup_predicate(key, value, "and"))
        return new

    def exclude(self, **lookups: Any) -> CachedQuery:
        """Negated lookups: ``.exclude(published=False)``."""
        new = self._clone()
        for key, value in lookups.items():
            new._predicates.append(_lookup_predicate(key, value, "and not"))
        return new

    def order(self, *fields: str) -> CachedQuery:
        """
        ORDER BY. Prefix with '-' for DESC. Use '?' for random order.

        Usage:
            .order("-created_at", "title")
        """
        new = self._clone()
        for f in fields:
            if f == "?":
                new._orderings.append(Ordering("?"))
            elif f.startswith("-"):
                new._orderings.append(Ordering(f[1:], descending=True))
            else:
                new._orderings.append(Ordering(f))
        return new

    order_by = order

    def limit(self, n: int) -> CachedQuery:
        new = self._clone()
        new._limit_val = n
        return new

    def offset(self, n: int) -> CachedQuery:
        new = self._clone()
        new._offset_val = n
        return new

    def seek(self, column: str, value: Any) -> CachedQuery:
        """Keyset pagination: rows past ``value`` in ``column``'s order direction."""
        new = self._clone()
        new._cursor = (column, value)
        return new

    def distinct(self) -> CachedQuery:
        new = self._clone()
        new._distinct = True
        return new

    def only(self, *columns: str) -> CachedQuery:
        """Select only ``columns`` (the primary key is always included)."""
        new = self._clone()
        pk = getattr(self._model, "primary_key", "id")
        column_list = list(columns)
        if pk not in column_list:
            column_list.insert(0, pk)
        new._columns = tuple(column_list)
        return new

    def prefetch_related(self, *relations: str) -> CachedQuery:
        """Eager-load relations; part of the cache key."""
        new = self._clone()
        for name in relations:
            if name not in new._eager:
                new._eager.append(name)
        return new

    with_related = prefetch_related

    def without_related(self, *relations: str) -> CachedQuery:
        """Skip relations the model eager-loads by default."""
        new = self._clone()
        for name in relations:
            if name not in new._eager_exclude:
                new._eager_exclude.append(name)
        return new

    def scope(self, name: str, *args: Any, **kwargs: Any) -> CachedQuery:
        """
        Apply the model's local scope ``scope_<name>(query, *args)``.

        Usage:
            class Post(Cacheable):
                @staticmethod
                def scope_published(query):
                    return query.where("published", True)

            await cache.query(Post, source).scope("published").all()
        """
        method = getattr(self._model, f"scope_{name}", None)
        if method is None:
            raise AttributeError(f"{self._model.__qualname__} has no scope '{name}'")
        new = method(self, *args, **kwargs)._clone()
        new._scope_names.append(name)
        return new

    def without_global_scope(self, *names: str) -> CachedQuery:
        new = self._clone()
        new._removed_scopes.update(names)
        return new

    def without_global_scopes(self) -> CachedQuery:
        new = self._clone()
        new._without_all_scopes = True
        return new

    def with_trashed(self) -> CachedQuery:
        new = self._clone()
        new._trashed = "with"
        return new

    def only_trashed(self) -> CachedQuery:
        new = self._clone()
        new._trashed = "only"
        return new

    def ttl(self, minutes: int) -> CachedQuery:
        """Override the cache duration for this query's reads."""
        new = self._clone()
        new._ttl_minutes = minutes
        return new

    def __getitem__(self, key: Any) -> CachedQuery:
        """
        Slicing sets offset/limit.

        Usage:
            top_5 = query.order("-views")[:5]
        """
        if isinstance(key, slice):
            new = self._clone()
            if key.start is not None:
                new._offset_val = int(key.start)
            if key.stop is not None:
                new._limit_val = int(key.stop) - (key.start or 0)
            return new
        elif isinstance(key, int):
            new = self._clone()
            new._offset_val = key
            new._limit_val = 1
            return new
        raise TypeError(f"CachedQuery indices must be integers or slices, not {type(key).__name__}")

    # ── Spec building ────────────────────────────────────────────────

    def to_spec(self, select: Optional[SelectShape] = None, **changes: Any) -> QuerySpec:
        """Build the ``QuerySpec`` this query describes, global scopes applied."""
        q = self._with_global_scopes()
        meta = self._cache.registry.metadata_for(self._model)
        spec = QuerySpec(
            entity_type=meta.type_name,
            storage=meta.storage,
            predicates=tuple(q._predicates),
            orderings=tuple(q._orderings),
            limit=q._limit_val,
            offset=q._offset_val,
            cursor=q._cursor,
            eager_load=frozenset(q._eager),
            eager_exclude=frozenset(q._eager_exclude),
            scopes=frozenset(q._scope_names),
            select=select or SelectShape(columns=q._columns),
            distinct=q._distinct,
        )
        if changes:
            spec = replace(spec, **changes)
        return spec

    def _with_global_scopes(self) -> CachedQuery:
        if self._scopes_applied:
            return self
        q = self._clone()
        q._scopes_applied = True
        if self._without_all_scopes:
            return q

        if getattr(self._model, "soft_deletes", False) and SOFT_DELETE_SCOPE not in self._removed_scopes:
            column = getattr(self._model, "deleted_at_column", "deleted_at")
            if q._trashed == "exclude":
                q._predicates.append(Predicate(column, "is null"))
                q._scope_names.append(SOFT_DELETE_SCOPE)
            elif q._trashed == "only":
                q._predicates.append(Predicate(column, "is not null"))
                q._scope_names.append(ONLY_TRASHED_SCOPE)

        for name, apply in (getattr(self._model, "global_scopes", None) or {}).items():
            if name in self._removed_scopes:
                continue
            q = apply(q)._clone()
            q._scope_names.append(name)
        return q

    # ── Cached reads ─────────────────────────────────────────────────

    async def all(self) -> List[Any]:
        """Return all matching rows (cached)."""
        spec = self.to_spec()
        return await self._fetch(spec, lambda: self._source.select(spec))

    get = all

    async def first(self) -> Optional[Any]:
        """Return the first matching row or None (cached, None included)."""
        spec = self.to_spec(
            SelectShape(columns=self._columns, aggregate="first"),
            limit=1,
        )

        async def run() -> Optional[Any]:
            rows = await resolve(self._source.select(spec))
            return rows[0] if rows else None

        return await self._fetch(spec, run)

    async def find(self, key: Any) -> Optional[Any]:
        pk = getattr(self._model, "primary_key", "id")
        return await self.where(pk, key).first()

    async def find_or_fail(self, key: Any) -> Any:
        """Like ``find`` but raises ``RecordNotFoundFault`` when nothing matches."""
        record = await self.find(key)
        if record is None:
            raise RecordNotFoundFault(self._model.__qualname__, key)
        return record

    async def count(self) -> int:
        return int(await self._aggregate("count") or 0)

    async def sum(self, column: str) -> Any:
        return await self._aggregate("sum", column)

    async def avg(self, column: str) -> Any:
        return await self._aggregate("avg", column)

    async def min(self, column: str) -> Any:
        return await self._aggregate("min", column)

    async def max(self, column: str) -> Any:
        return await self._aggregate("max", column)

    async def exists(self) -> bool:
        return bool(await self._aggregate("exists"))

    async def pluck(self, column: str) -> List[Any]:
        """Values of one column across matching rows (cached)."""
        spec = self.to_spec(SelectShape(columns=(column,), aggregate="pluck"))

        async def run() -> List[Any]:
            rows = await resolve(self._source.select(spec))
            return [_row_value(row, column) for row in rows]

        return await self._fetch(spec, run)

    async def paginate(self, per_page: int = 15, page: int = 1) -> Page:
        """Offset pagination; the total and each page are cached independently."""
        if per_page < 1:
            raise ValueError(f"per_page must be at least 1, got {per_page}")
        page = max(page, 1)
        total = await self.count()
        items = await self.offset((page - 1) * per_page).limit(per_page).all()
        return Page(items=items, total=total, per_page=per_page, current_page=page)

    async def chunk(self, size: int) -> AsyncIterator[List[Any]]:
        """
        Iterate over cached pages of ``size`` rows.

        Usage:
            async for rows in query.order("id").chunk(100):
                ...
        """
        if size < 1:
            raise ValueError(f"chunk size must be at least 1, got {size}")
        page = 0
        while True:
            rows = await self.offset(page * size).limit(size).all()
            if not rows:
                break
            yield rows
            if len(rows) < size:
                break
            page += 1

    def __aiter__(self):
        return _CachedQueryIterator(self)

    async def _aggregate(self, function: str, column: Optional[str] = None) -> Any:
        spec = self.to_spec(SelectShape(columns=(), aggregate=function, aggregate_column=column))
        return await self._fetch(spec, lambda: self._source.aggregate(spec))

    async def _fetch(self, spec: QuerySpec, executor: Callable[[], Any]) -> Any:
        return await self._cache.fetch(spec, executor, ttl=self._ttl_minutes)

    # ── Writes (invalidate after the source completes) ───────────────

    async def create(self, values: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Dict[str, Any]:
        """Insert one row and return it with its primary key set."""
        row = {**(values or {}), **kwargs}
        key = await resolve(self._source.insert_get_id(self.to_spec(), row))
        await self._cache.after_write(self._model, WriteOperation.CREATED, [key])
        pk = getattr(self._model, "primary_key", "id")
        return {**row, pk: key}

    async def update(self, values: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> int:
        data = {**(values or {}), **kwargs}
        affected = await resolve(self._source.update(self.to_spec(), data))
        await self._cache.after_write(self._model, WriteOperation.MASS_UPDATED)
        return affected

    async def delete(self) -> int:
        """Delete matching rows, or mark them deleted for soft-deleting models."""
        spec = self.to_spec()
        if getattr(self._model, "soft_deletes", False):
            column = getattr(self._model, "deleted_at_column", "deleted_at")
            now = datetime.datetime.now(datetime.timezone.utc)
            affected = await resolve(self._source.update(spec, {column: now}))
        else:
            affected = await resolve(self._source.delete(spec))
        await self._cache.after_write(self._model, WriteOperation.MASS_DELETED)
        return affected

    async def insert(self, rows: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> Any:
        result = await resolve(self._source.insert(self.to_spec(), self._rows(rows)))
        await self._cache.after_write(self._model, WriteOperation.INSERTED)
        return result

    async def insert_get_id(self, row: Mapping[str, Any]) -> Any:
        key = await resolve(self._source.insert_get_id(self.to_spec(), dict(row)))
        await self._cache.after_write(self._model, WriteOperation.INSERTED, [key])
        return key

    async def insert_or_ignore(self, rows: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> Any:
        result = await resolve(self._source.insert_or_ignore(self.to_spec(), self._rows(rows)))
        await self._cache.after_write(self._model, WriteOperation.INSERTED)
        return result

    async def update_or_insert(self, match: Mapping[str, Any], values: Optional[Mapping[str, Any]] = None) -> Any:
        result = await resolve(
            self._source.update_or_insert(self.to_spec(), dict(match), dict(values or {}))
        )
        await self._cache.after_write(self._model, WriteOperation.UPSERTED)
        return result

    async def upsert(
        self,
        rows: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]],
        unique_by: Union[str, Sequence[str]],
        update: Optional[Sequence[str]] = None,
    ) -> Any:
        if isinstance(unique_by, str):
            unique_by = [unique_by]
        result = await resolve(
            self._source.upsert(self.to_spec(), self._rows(rows), list(unique_by), update)
        )
        await self._cache.after_write(self._model, WriteOperation.UPSERTED)
        return result

    async def truncate(self) -> Any:
        result = await resolve(self._source.truncate(self.to_spec()))
        await self._cache.after_write(self._model, WriteOperation.TRUNCATED)
        return result

    async def increment(
        self,
        column: str,
        amount: Union[int, float] = 1,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        result = await resolve(self._source.increment(self.to_spec(), column, amount, extra))
        await self._cache.after_write(self._model, WriteOperation.INCREMENTED)
        return result

    async def decrement(
        self,
        column: str,
        amount: Union[int, float] = 1,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        result = await resolve(self._source.increment(self.to_spec(), column, -amount, extra))
        await self._cache.after_write(self._model, WriteOperation.DECREMENTED)
        return result

    async def force_delete(self) -> Any:
        result = await resolve(self._source.force_delete(self.with_trashed().to_spec()))
        await self._cache.after_write(self._model, WriteOperation.FORCE_DELETED)
        return result

    async def restore(self) -> Any:
        result = await resolve(self._source.restore(self.with_trashed().to_spec()))
        await self._cache.after_write(self._model, WriteOperation.RESTORED)
        return result

    async def flush_cache(self) -> bool:
        """Invalidate every cached query of this model."""
        return await self._cache.invalidate(self._model)

    @staticmethod
    def _rows(rows: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> List[Dict[str, Any]]:
        if isinstance(rows, Mapping):
            return [dict(rows)]
        return [dict(r) for r in rows]

    # ── Internal ─────────────────────────────────────────────────────

    def _add_where(self, column: Any, operator: Any, value: Any, boolean: str) -> CachedQuery:
        if isinstance(column, Mapping):
            new = self._clone()
            for key, val in column.items():
                new._predicates.append(Predicate(key, "=", val, boolean))
            return new
        if value is _MISSING:
            if operator is _MISSING:
                raise TypeError("where() needs a value")
            operator, value = "=", operator
        if value is None and operator in ("=", "!="):
            operator = "is null" if operator == "=" else "is not null"
        return self._push(Predicate(column, operator, value, boolean))

    def _push(self, predicate: Predicate) -> CachedQuery:
        new = self._clone()
        new._predicates.append(predicate)
        return new

    def _clone(self) -> CachedQuery:
        """Create an immutable copy of this query."""
        c = CachedQuery.__new__(CachedQuery)
        c._model = self._model
        c._cache = self._cache
        c._source = self._source
        c._predicates = self._predicates.copy()
        c._orderings = self._orderings.copy()
        c._limit_val = self._limit_val
        c._offset_val = self._offset_val
        c._cursor = self._cursor
        c._eager = self._eager.copy()
        c._eager_exclude = self._eager_exclude.copy()
        c._scope_names = self._scope_names.copy()
        c._removed_scopes = self._removed_scopes.copy()
        c._without_all_scopes = self._without_all_scopes
        c._trashed = self._trashed
        c._columns = self._columns
        c._distinct = self._distinct
        c._ttl_minutes = self._ttl_minutes
        c._scopes_applied = self._scopes_applied
        return c

    def __repr__(self) -> str:
        return (
            f"<CachedQuery: {self._model.__qualname__} "
            f"where={len(self._predicates)} order={len(self._orderings)} "
            f"limit={self._limit_val} offset={self._offset_val}>"
        )


class _CachedQueryIterator:
    """Async iterator over ``CachedQuery.all()``."""

    def __init__(self, query: CachedQuery):
        self._query = query
        self._results: Optional[List[Any]] = None
        self._index = 0

    async def __anext__(self):
        if self._results is None:
            self._results = await self._query.all()
        if self._index >= len(self._results):
            raise StopAsyncIteration
        item = self._results[self._index]
        self._index += 1
        return item
