"""
ModelCache — Pivot relationship helpers.

Many-to-many mutations (attach / detach / sync) do not go through the
owning entity's write path, so these helpers run the mutation on the
relation and then invalidate the owner's scope, but only when the
mutation actually changed something.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from .debug import CacheDebugger
from .faults import CacheConfigFault, RelationNotFoundFault
from .invalidation import InvalidationRouter
from .scope import ScopeRegistry
from .source import PivotRelation, resolve, sync_change_count


def _as_id_list(ids: Any) -> List[Any]:
    if ids is None:
        return []
    if isinstance(ids, (str, bytes)) or not isinstance(ids, Iterable):
        return [ids]
    return list(ids)


class RelationshipCacheBridge:
    """
    Attach/detach/sync helpers that flush the owner's cache scope.

    Relations are looked up by name on the owning instance: either a
    ``PivotRelation`` attribute or a zero-argument method returning one.
    """

    __slots__ = ("_router", "_registry", "_debugger")

    def __init__(
        self,
        router: InvalidationRouter,
        registry: ScopeRegistry,
        debugger: Optional[CacheDebugger] = None,
    ):
        self._router = router
        self._registry = registry
        self._debugger = debugger or CacheDebugger()

    async def attach_and_flush(
        self,
        owner: Any,
        relation: str,
        ids: Any,
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Attach ``ids``; flushes whenever at least one id is given."""
        pivot = self._relation(owner, relation)
        id_list = _as_id_list(ids)
        if not id_list:
            return
        await resolve(pivot.attach(id_list, attributes or {}))
        await self._flush(owner, "attach")

    async def detach_and_flush(self, owner: Any, relation: str, ids: Any = None) -> int:
        """Detach ``ids`` (all related rows when None); flushes if rows were removed."""
        pivot = self._relation(owner, relation)
        removed = await resolve(pivot.detach(None if ids is None else _as_id_list(ids)))
        if removed and removed > 0:
            await self._flush(owner, "detach")
        return removed

    async def sync_and_flush(
        self,
        owner: Any,
        relation: str,
        ids: Any,
        detaching: bool = True,
    ) -> Dict[str, List[Any]]:
        """Sync the relation to ``ids``; flushes if anything was attached, updated or detached."""
        pivot = self._relation(owner, relation)
        changes = await resolve(pivot.sync(_as_id_list(ids), detaching))
        if sync_change_count(changes) > 0:
            await self._flush(owner, "sync")
        return changes

    def _relation(self, owner: Any, name: str) -> PivotRelation:
        model = type(owner)
        if not self._registry.is_cacheable(model):
            raise CacheConfigFault(
                f"{model.__qualname__} does not take part in the model cache; "
                f"relationship helpers need a cacheable owner",
                code="CACHE_OWNER_NOT_CACHEABLE",
                model=model.__qualname__,
            )

        accessor = getattr(owner, name, None)
        if accessor is None:
            raise RelationNotFoundFault(model.__qualname__, name)
        if not isinstance(accessor, PivotRelation) and callable(accessor):
            accessor = accessor()
        if not isinstance(accessor, PivotRelation):
            raise RelationNotFoundFault(model.__qualname__, name)
        return accessor

    async def _flush(self, owner: Any, operation: str) -> None:
        model = type(owner)
        await self._router.invalidate(model)
        self._debugger.info(
            "Cache flushed after %s operation for model: %s", operation, model.__qualname__
        )
