"""
ModelCache Testing - Test doubles.

Provides :class:`InMemorySource`, :class:`InMemoryPivot` and
:class:`FailingStore` so cache behaviour can be exercised without a
database or a cache server.
"""

from __future__ import annotations

import random
import re
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .core import Predicate, QuerySpec
from .faults import CacheBackendFault, CacheCapabilityFault
from .stores.base import TaggableCacheStore
from .stores.memory import TaggedMemoryStore

Row = Dict[str, Any]
RelationLoader = Callable[[Row], Any]


def _like(pattern: str) -> "re.Pattern[str]":
    parts = []
    for ch in pattern:
        if ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("^" + "".join(parts) + "$", re.DOTALL)


def _compare(actual: Any, operator: str, expected: Any) -> bool:
    if operator == "is null":
        return actual is None
    if operator == "is not null":
        return actual is not None
    if operator == "=":
        return actual == expected
    if operator == "!=":
        return actual != expected
    if operator == "in":
        return actual in expected
    if operator == "not in":
        return actual not in expected
    if actual is None:
        return False
    if operator == "like":
        return bool(_like(str(expected)).match(str(actual)))
    if operator == "between":
        low, high = expected
        return low <= actual <= high
    if operator == "<":
        return actual < expected
    if operator == "<=":
        return actual <= expected
    if operator == ">":
        return actual > expected
    if operator == ">=":
        return actual >= expected
    raise ValueError(f"Unsupported operator: {operator!r}")


def matches(row: Mapping[str, Any], predicates: Sequence[Predicate]) -> bool:
    """
    Evaluate predicates against a row with SQL precedence (AND before OR).
    """
    groups: List[List[bool]] = [[]]
    for p in predicates:
        result = _compare(row.get(p.column), p.operator, p.value)
        if p.boolean.endswith("not"):
            result = not result
        if p.boolean.startswith("or") and groups[-1]:
            groups.append([])
        groups[-1].append(result)
    return any(all(group) for group in groups)


class InMemorySource:
    """
    ``QuerySource`` over in-memory tables of dict rows.

    Evaluates predicates, ordering, keyset cursors, offset/limit, column
    shape, aggregates, soft deletes and eager loads, and records every
    spec it executes so tests can count real query executions.

    Usage::

        source = InMemorySource({"posts": [{"id": 1, "title": "A", "published": True}]})
        rows = await cache.query(Post, source).where("published", True).all()
        assert source.select_count == 1
    """

    def __init__(
        self,
        tables: Optional[Mapping[str, Iterable[Mapping[str, Any]]]] = None,
        *,
        primary_key: str = "id",
        deleted_at_column: str = "deleted_at",
    ):
        self.tables: Dict[str, List[Row]] = defaultdict(list)
        self.primary_key = primary_key
        self.deleted_at_column = deleted_at_column
        self.executed: List[QuerySpec] = []
        self.writes: List[Tuple[str, QuerySpec]] = []
        self._relations: Dict[Tuple[str, str], RelationLoader] = {}
        self._next_id: Dict[str, int] = defaultdict(int)
        for name, rows in (tables or {}).items():
            for row in rows:
                self._append(name, dict(row))

    @property
    def select_count(self) -> int:
        """Number of reads (select + aggregate) actually executed."""
        return len(self.executed)

    def register_relation(self, storage: str, name: str, loader: RelationLoader) -> None:
        """Eager-load ``name`` on rows of ``storage`` via ``loader(row)``."""
        self._relations[(storage, name)] = loader

    def rows(self, storage: str) -> List[Row]:
        return [dict(r) for r in self.tables[storage]]

    # -- Reads -------------------------------------------------------------

    async def select(self, spec: QuerySpec) -> List[Row]:
        self.executed.append(spec)
        rows = self._ordered(spec, self._matching(spec))
        rows = self._after_cursor(spec, rows)
        start = spec.offset or 0
        rows = rows[start:start + spec.limit] if spec.limit is not None else rows[start:]
        result = [self._shape(spec, row) for row in rows]
        if spec.distinct:
            unique: List[Row] = []
            for row in result:
                if row not in unique:
                    unique.append(row)
            result = unique
        return result

    async def aggregate(self, spec: QuerySpec) -> Any:
        self.executed.append(spec)
        rows = self._after_cursor(spec, self._ordered(spec, self._matching(spec)))
        function = spec.select.aggregate
        if function == "count":
            return len(rows)
        if function == "exists":
            return bool(rows)
        values = [r.get(spec.select.aggregate_column) for r in rows]
        values = [v for v in values if v is not None]
        if function == "sum":
            return sum(values)
        if function == "avg":
            return sum(values) / len(values) if values else None
        if function == "min":
            return min(values) if values else None
        if function == "max":
            return max(values) if values else None
        raise ValueError(f"Unsupported aggregate: {function!r}")

    # -- Writes ------------------------------------------------------------

    async def insert(self, spec: QuerySpec, rows: Sequence[Mapping[str, Any]]) -> bool:
        self.writes.append(("insert", spec))
        for row in rows:
            self._append(spec.storage, dict(row))
        return True

    async def insert_get_id(self, spec: QuerySpec, row: Mapping[str, Any]) -> Any:
        self.writes.append(("insert_get_id", spec))
        return self._append(spec.storage, dict(row))[self.primary_key]

    async def insert_or_ignore(self, spec: QuerySpec, rows: Sequence[Mapping[str, Any]]) -> int:
        self.writes.append(("insert_or_ignore", spec))
        existing = {r.get(self.primary_key) for r in self.tables[spec.storage]}
        inserted = 0
        for row in rows:
            key = row.get(self.primary_key)
            if key is not None and key in existing:
                continue
            self._append(spec.storage, dict(row))
            inserted += 1
        return inserted

    async def update_or_insert(
        self, spec: QuerySpec, match: Mapping[str, Any], values: Mapping[str, Any]
    ) -> bool:
        self.writes.append(("update_or_insert", spec))
        for row in self.tables[spec.storage]:
            if all(row.get(k) == v for k, v in match.items()):
                row.update(values)
                return True
        self._append(spec.storage, {**match, **values})
        return True

    async def upsert(
        self,
        spec: QuerySpec,
        rows: Sequence[Mapping[str, Any]],
        unique_by: Sequence[str],
        update: Optional[Sequence[str]] = None,
    ) -> int:
        self.writes.append(("upsert", spec))
        affected = 0
        for incoming in rows:
            existing = next(
                (r for r in self.tables[spec.storage]
                 if all(r.get(c) == incoming.get(c) for c in unique_by)),
                None,
            )
            if existing is None:
                self._append(spec.storage, dict(incoming))
            else:
                columns = update if update is not None else list(incoming.keys())
                existing.update({c: incoming[c] for c in columns if c in incoming})
            affected += 1
        return affected

    async def update(self, spec: QuerySpec, values: Mapping[str, Any]) -> int:
        self.writes.append(("update", spec))
        rows = self._matching(spec)
        for row in rows:
            row.update(values)
        return len(rows)

    async def delete(self, spec: QuerySpec) -> int:
        self.writes.append(("delete", spec))
        return self._remove(spec)

    async def truncate(self, spec: QuerySpec) -> int:
        self.writes.append(("truncate", spec))
        count = len(self.tables[spec.storage])
        self.tables[spec.storage].clear()
        return count

    async def increment(
        self,
        spec: QuerySpec,
        column: str,
        amount: Any = 1,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> int:
        self.writes.append(("increment", spec))
        rows = self._matching(spec)
        for row in rows:
            row[column] = (row.get(column) or 0) + amount
            if extra:
                row.update(extra)
        return len(rows)

    async def force_delete(self, spec: QuerySpec) -> int:
        self.writes.append(("force_delete", spec))
        return self._remove(spec)

    async def restore(self, spec: QuerySpec) -> int:
        self.writes.append(("restore", spec))
        restored = 0
        for row in self._matching(spec):
            if row.get(self.deleted_at_column) is not None:
                row[self.deleted_at_column] = None
                restored += 1
        return restored

    # -- Internal ----------------------------------------------------------

    def _append(self, storage: str, row: Row) -> Row:
        key = row.get(self.primary_key)
        if key is None:
            self._next_id[storage] += 1
            row[self.primary_key] = self._next_id[storage]
        elif isinstance(key, int):
            self._next_id[storage] = max(self._next_id[storage], key)
        self.tables[storage].append(row)
        return row

    def _matching(self, spec: QuerySpec) -> List[Row]:
        return [r for r in self.tables[spec.storage] if matches(r, spec.predicates)]

    def _remove(self, spec: QuerySpec) -> int:
        doomed = {id(r) for r in self._matching(spec)}
        table = self.tables[spec.storage]
        self.tables[spec.storage] = [r for r in table if id(r) not in doomed]
        return len(doomed)

    def _ordered(self, spec: QuerySpec, rows: List[Row]) -> List[Row]:
        rows = list(rows)
        for ordering in reversed(spec.orderings):
            if ordering.column == "?":
                random.shuffle(rows)
                continue
            rows.sort(
                key=lambda r: (r.get(ordering.column) is None, r.get(ordering.column)),
                reverse=ordering.descending,
            )
        return rows

    def _after_cursor(self, spec: QuerySpec, rows: List[Row]) -> List[Row]:
        if spec.cursor is None:
            return rows
        column, value = spec.cursor
        descending = any(o.column == column and o.descending for o in spec.orderings)
        if descending:
            return [r for r in rows if r.get(column) is not None and r[column] < value]
        return [r for r in rows if r.get(column) is not None and r[column] > value]

    def _shape(self, spec: QuerySpec, row: Row) -> Row:
        columns = spec.select.columns
        shaped = dict(row) if "*" in columns else {c: row.get(c) for c in columns}
        for name in sorted(spec.relations):
            loader = self._relations.get((spec.storage, name))
            shaped[name] = loader(row) if loader else []
        return shaped


class InMemoryPivot:
    """
    ``PivotRelation`` over an in-memory id → attributes map.

    Usage::

        post.tags = InMemoryPivot([1, 2])
        await cache.sync_and_flush(post, "tags", [2, 3])
        assert set(post.tags.ids) == {2, 3}
    """

    def __init__(self, ids: Iterable[Any] = ()):
        self.ids: Dict[Any, Dict[str, Any]] = {i: {} for i in ids}
        self.calls: List[str] = []

    async def attach(self, ids: Iterable[Any], attributes: Optional[Mapping[str, Any]] = None) -> None:
        self.calls.append("attach")
        for i in ids:
            self.ids[i] = dict(attributes or {})

    async def detach(self, ids: Optional[Iterable[Any]] = None) -> int:
        self.calls.append("detach")
        if ids is None:
            removed = len(self.ids)
            self.ids.clear()
            return removed
        removed = 0
        for i in ids:
            if self.ids.pop(i, None) is not None:
                removed += 1
        return removed

    async def sync(self, ids: Iterable[Any], detaching: bool = True) -> Dict[str, List[Any]]:
        self.calls.append("sync")
        wanted = list(ids)
        attached = [i for i in wanted if i not in self.ids]
        detached = [i for i in self.ids if i not in wanted] if detaching else []
        for i in attached:
            self.ids[i] = {}
        for i in detached:
            del self.ids[i]
        return {"attached": attached, "detached": detached, "updated": []}


class FailingStore(TaggableCacheStore):
    """
    Taggable store whose selected operations raise ``CacheBackendFault``.

    With ``tagless=True``, ``flush_tags`` raises ``CacheCapabilityFault``
    instead, like a store that turns out unable to tag-flush at runtime.

    Operations that are not set to fail are served by an inner
    ``TaggedMemoryStore``.

    Usage::

        store = FailingStore(fail={"get", "put"})
        cache = ModelCache(store=store)
    """

    OPERATIONS = frozenset({"get", "put", "forget", "flush", "flush_tags"})

    def __init__(self, fail: Optional[Iterable[str]] = None, *, tagless: bool = False):
        self.fail = set(self.OPERATIONS if fail is None else fail)
        self.tagless = tagless
        self.inner = TaggedMemoryStore()
        self.calls: List[str] = []

    @property
    def name(self) -> str:
        return "failing"

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail:
            raise CacheBackendFault(self.name, operation, "store unavailable")

    async def get(self, key: str) -> Optional[bytes]:
        self._check("get")
        return await self.inner.get(key)

    async def put(
        self,
        key: str,
        value: bytes,
        ttl: Optional[int] = None,
        tags: Tuple[str, ...] = (),
    ) -> None:
        self._check("put")
        await self.inner.put(key, value, ttl=ttl, tags=tags)

    async def forget(self, key: str) -> bool:
        self._check("forget")
        return await self.inner.forget(key)

    async def flush(self) -> bool:
        self._check("flush")
        return await self.inner.flush()

    async def flush_tags(self, tags: Iterable[str]) -> bool:
        if self.tagless:
            self.calls.append("flush_tags")
            raise CacheCapabilityFault(self.name)
        self._check("flush_tags")
        return await self.inner.flush_tags(tags)
