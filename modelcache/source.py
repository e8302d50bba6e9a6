"""
ModelCache — External collaborator protocols.

The cache never talks to storage itself. Reads and writes go through a
``QuerySource`` (the ORM / query engine) and pivot mutations through a
``PivotRelation``. Both may be implemented with plain or ``async``
methods; results that are awaitable are awaited.
"""

from __future__ import annotations

import inspect
from typing import (
    Any,
    Awaitable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
    Union,
    runtime_checkable,
)

from .core import QuerySpec

T = TypeVar("T")

Row = Dict[str, Any]


async def resolve(value: Union[T, Awaitable[T]]) -> T:
    """Await ``value`` if it is awaitable, else return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


@runtime_checkable
class QuerySource(Protocol):
    """
    Storage-side executor for ``QuerySpec`` objects.

    ``select`` returns materialized rows honouring every clause of the
    spec (predicates, ordering, pagination, eager loads, column shape).
    ``aggregate`` evaluates ``spec.select.aggregate`` and returns a
    scalar. Write methods return the number of affected rows unless
    noted otherwise.
    """

    def select(self, spec: QuerySpec) -> Any:
        ...

    def aggregate(self, spec: QuerySpec) -> Any:
        ...

    def insert(self, spec: QuerySpec, rows: Sequence[Mapping[str, Any]]) -> Any:
        ...

    def insert_get_id(self, spec: QuerySpec, row: Mapping[str, Any]) -> Any:
        """Insert one row and return its primary key."""
        ...

    def insert_or_ignore(self, spec: QuerySpec, rows: Sequence[Mapping[str, Any]]) -> Any:
        ...

    def update_or_insert(
        self, spec: QuerySpec, match: Mapping[str, Any], values: Mapping[str, Any]
    ) -> Any:
        ...

    def upsert(
        self,
        spec: QuerySpec,
        rows: Sequence[Mapping[str, Any]],
        unique_by: Sequence[str],
        update: Optional[Sequence[str]] = None,
    ) -> Any:
        ...

    def update(self, spec: QuerySpec, values: Mapping[str, Any]) -> Any:
        ...

    def delete(self, spec: QuerySpec) -> Any:
        ...

    def truncate(self, spec: QuerySpec) -> Any:
        ...

    def increment(
        self,
        spec: QuerySpec,
        column: str,
        amount: Union[int, float] = 1,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Add ``amount`` (negative to decrement) to ``column``."""
        ...

    def force_delete(self, spec: QuerySpec) -> Any:
        """Hard-delete rows, bypassing soft deletes."""
        ...

    def restore(self, spec: QuerySpec) -> Any:
        """Clear the soft-delete marker on matching rows."""
        ...


@runtime_checkable
class PivotRelation(Protocol):
    """Many-to-many relation owned by one entity instance."""

    def attach(self, ids: Iterable[Any], attributes: Optional[Mapping[str, Any]] = None) -> Any:
        ...

    def detach(self, ids: Optional[Iterable[Any]] = None) -> Any:
        """Returns the number of pivot rows removed."""
        ...

    def sync(self, ids: Iterable[Any], detaching: bool = True) -> Any:
        """Returns ``{"attached": [...], "detached": [...], "updated": [...]}``."""
        ...


def sync_change_count(changes: Mapping[str, List[Any]]) -> int:
    """Total number of pivot rows a ``sync`` call changed."""
    return sum(len(changes.get(k) or ()) for k in ("attached", "detached", "updated"))
