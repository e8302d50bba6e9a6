"""
ModelCache — Store interfaces.

``CacheStore`` is the byte-oriented key/value contract every backend
implements. Selective invalidation is a narrower interface,
``TaggableCacheStore``, so capability is a type question answered once at
construction time instead of a runtime probe.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional, Tuple


class CacheStore(ABC):
    """
    Abstract cache store.

    All methods are async. Implementations raise ``CacheBackendFault``
    when the underlying transport fails; callers at the cache boundary
    catch it and degrade.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Store identifier (e.g. "memory", "redis")."""
        ...

    @property
    def supports_tags(self) -> bool:
        return False

    async def initialize(self) -> None:
        """Open connections. Called lazily by stores that need it."""
        pass

    async def shutdown(self) -> None:
        """Release connections."""
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Return the stored payload, or None if absent or expired."""
        ...

    @abstractmethod
    async def put(
        self,
        key: str,
        value: bytes,
        ttl: Optional[int] = None,
        tags: Tuple[str, ...] = (),
    ) -> None:
        """
        Store ``value`` under ``key``.

        Args:
            key: Cache key
            value: Serialized payload
            ttl: Time-to-live in seconds (None = no expiry)
            tags: Invalidation tags; ignored by stores without tag support
        """
        ...

    @abstractmethod
    async def forget(self, key: str) -> bool:
        """Remove one key. Returns True if it existed."""
        ...

    @abstractmethod
    async def flush(self) -> bool:
        """Remove every entry this store owns."""
        ...


class TaggableCacheStore(CacheStore):
    """Cache store that can invalidate entries by tag."""

    @property
    def supports_tags(self) -> bool:
        return True

    @abstractmethod
    async def flush_tags(self, tags: Iterable[str]) -> bool:
        """
        Remove every entry whose tag set contains ALL of ``tags``.

        Returns True when the flush completed (even if nothing matched).
        """
        ...
