"""
Shared test fixtures and helpers for the model cache test suite.
"""

from typing import Any, List

import pytest

from modelcache import ModelCache, ModelCacheConfig, MemoryStore, TaggedMemoryStore
from modelcache.testing import InMemorySource


# ============================================================================
# Helpers
# ============================================================================


class Executor:
    """Zero-argument query executor that counts its calls."""

    def __init__(self, result: Any = None):
        self.result = result
        self.calls = 0

    def __call__(self) -> Any:
        self.calls += 1
        return self.result


class AsyncExecutor(Executor):
    async def __call__(self) -> Any:
        self.calls += 1
        return self.result


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


POST_ROWS: List[dict] = [
    {"id": 1, "title": "Intro", "published": True, "views": 10, "author_id": 1},
    {"id": 2, "title": "Draft", "published": False, "views": 0, "author_id": 1},
    {"id": 3, "title": "Deep dive", "published": True, "views": 250, "author_id": 2},
    {"id": 4, "title": "Notes", "published": True, "views": 40, "author_id": 2},
]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def config():
    return ModelCacheConfig(store="memory")


@pytest.fixture
def cache(config):
    """ModelCache over a fresh tagged memory store."""
    return ModelCache(config=config)


@pytest.fixture
def array_cache():
    """ModelCache over a store without tag support."""
    return ModelCache(config=ModelCacheConfig(store="array"), store=MemoryStore())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def clocked_cache(config, clock):
    """ModelCache whose store expires entries on a fake clock."""
    return ModelCache(config=config, store=TaggedMemoryStore(clock=clock))


@pytest.fixture
def source():
    """Empty in-memory tables."""
    return InMemorySource()


@pytest.fixture
def seeded_source():
    """In-memory tables with a few posts, tags and comments."""
    source = InMemorySource({
        "posts": POST_ROWS,
        "tags": [{"id": 1, "name": "python"}, {"id": 2, "name": "cache"}],
        "soft_posts": [
            {"id": 1, "title": "Live", "deleted_at": None},
            {"id": 2, "title": "Gone", "deleted_at": "2024-01-01T00:00:00"},
        ],
    })
    source.register_relation("posts", "tags", lambda row: [f"tag-{row['id']}"])
    return source
