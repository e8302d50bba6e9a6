"""
ModelCache — In-process stores.

- ``MemoryStore`` ("array"): OrderedDict with LRU eviction and lazy TTL
  expiry. No tag support, so invalidation always falls back to a full
  flush.
- ``TaggedMemoryStore`` ("memory"): the same store plus a tag → keys
  inverted index for selective invalidation.

Concurrency is guarded by an ``asyncio.Lock``; entries expire lazily on
access, no background sweeper is started.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict, defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Set, Tuple

from .base import CacheStore, TaggableCacheStore

logger = logging.getLogger("modelcache.stores.memory")


@dataclass(slots=True)
class _Entry:
    value: bytes
    expires_at: Optional[float]
    tags: Tuple[str, ...] = ()

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class MemoryStore(CacheStore):
    """
    Process-local LRU store.

    Args:
        max_size: Maximum number of entries before LRU eviction
        clock: Monotonic time source (seconds)
    """

    def __init__(self, max_size: int = 10000, clock: Callable[[], float] = time.monotonic):
        self._max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = asyncio.Lock()
        self._evictions = 0

    @property
    def name(self) -> str:
        return "array"

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def evictions(self) -> int:
        return self._evictions

    async def get(self, key: str) -> Optional[bytes]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expired(self._clock()):
                self._remove(key)
                return None
            self._entries.move_to_end(key)
            return entry.value

    async def put(
        self,
        key: str,
        value: bytes,
        ttl: Optional[int] = None,
        tags: Tuple[str, ...] = (),
    ) -> None:
        async with self._lock:
            if key in self._entries:
                self._remove(key)

            while len(self._entries) >= self._max_size:
                oldest = next(iter(self._entries))
                self._remove(oldest)
                self._evictions += 1

            expires_at = None
            if ttl is not None and ttl > 0:
                expires_at = self._clock() + ttl

            self._entries[key] = _Entry(value=value, expires_at=expires_at, tags=self._keep_tags(tags))
            self._index(key, self._entries[key].tags)

    async def forget(self, key: str) -> bool:
        async with self._lock:
            if key in self._entries:
                self._remove(key)
                return True
            return False

    async def flush(self) -> bool:
        async with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._clear_index()
        logger.debug(f"Flushed {count} entries from {self.name} store")
        return True

    async def keys(self) -> list:
        """Live (unexpired) keys, least recently used first."""
        async with self._lock:
            now = self._clock()
            return [k for k, e in self._entries.items() if not e.expired(now)]

    # ── Index hooks (no-ops without tag support) ─────────────────────

    def _keep_tags(self, tags: Tuple[str, ...]) -> Tuple[str, ...]:
        return ()

    def _index(self, key: str, tags: Tuple[str, ...]) -> None:
        pass

    def _clear_index(self) -> None:
        pass

    def _remove(self, key: str) -> None:
        """Drop one key. Caller must hold lock."""
        self._entries.pop(key, None)


class TaggedMemoryStore(MemoryStore, TaggableCacheStore):
    """
    Process-local LRU store with tag-based invalidation.

    Tag flush removes entries carrying *all* requested tags, using the
    smallest tag set of the request as the candidate list.
    """

    def __init__(self, max_size: int = 10000, clock: Callable[[], float] = time.monotonic):
        super().__init__(max_size=max_size, clock=clock)
        self._tag_index: Dict[str, Set[str]] = defaultdict(set)

    @property
    def name(self) -> str:
        return "memory"

    async def flush_tags(self, tags: Iterable[str]) -> bool:
        wanted = set(tags)
        if not wanted:
            return True
        async with self._lock:
            buckets = [self._tag_index.get(tag, set()) for tag in wanted]
            smallest = min(buckets, key=len)
            doomed = [k for k in smallest if wanted.issubset(self._entries[k].tags)]
            for key in doomed:
                self._remove(key)
        logger.debug(f"Tag flush {sorted(wanted)} removed {len(doomed)} entries")
        return True

    async def tagged_keys(self, tag: str) -> Set[str]:
        async with self._lock:
            return set(self._tag_index.get(tag, set()))

    def _keep_tags(self, tags: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(tags)

    def _index(self, key: str, tags: Tuple[str, ...]) -> None:
        for tag in tags:
            self._tag_index[tag].add(key)

    def _clear_index(self) -> None:
        self._tag_index.clear()

    def _remove(self, key: str) -> None:
        """Remove a key and clean up the tag index. Caller must hold lock."""
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        for tag in entry.tags:
            tag_set = self._tag_index.get(tag)
            if tag_set:
                tag_set.discard(key)
                if not tag_set:
                    del self._tag_index[tag]
