"""
ModelCache — Null (no-op) store.

Used when caching should be disabled without changing application
code: every read misses, writes are dropped, flushes succeed.
"""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

from .base import TaggableCacheStore


class NullStore(TaggableCacheStore):
    """No-op cache store — all operations are pass-through."""

    @property
    def name(self) -> str:
        return "null"

    async def get(self, key: str) -> Optional[bytes]:
        return None

    async def put(
        self,
        key: str,
        value: bytes,
        ttl: Optional[int] = None,
        tags: Tuple[str, ...] = (),
    ) -> None:
        pass

    async def forget(self, key: str) -> bool:
        return False

    async def flush(self) -> bool:
        return True

    async def flush_tags(self, tags: Iterable[str]) -> bool:
        return True
