"""
ModelCache — Query fingerprinting.

Turns a ``QuerySpec`` into a stable, fixed-length cache key.

Clauses are hashed positionally (in the order they were added), so two
semantically equivalent queries assembled in a different order get
different keys. Eager-load and scope names are the exception: they are
sorted, since relation sets are routinely built along different code
paths for the same logical query.

Pattern: ``{prefix}{sha256_hex[:hash_length]}``
"""

from __future__ import annotations

import datetime
import decimal
import enum
import hashlib
import json
import uuid
from typing import Any

from .core import Ordering, Predicate, QuerySpec


def canonical_value(value: Any) -> Any:
    """
    Canonical, type-tagged JSON form of a binding value.

    Value-equal bindings always encode identically, and values of
    different types never collide (``1``, ``"1"``, ``True``, ``1.0``).
    """
    if value is None:
        return None
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return ["b", value]
    if isinstance(value, enum.Enum):
        return ["e", type(value).__name__, canonical_value(value.value)]
    if isinstance(value, int):
        return ["i", str(value)]
    if isinstance(value, float):
        return ["f", repr(value)]
    if isinstance(value, decimal.Decimal):
        return ["d", str(value)]
    if isinstance(value, str):
        return ["s", value]
    if isinstance(value, datetime.datetime):
        return ["dt", value.isoformat()]
    if isinstance(value, datetime.date):
        return ["da", value.isoformat()]
    if isinstance(value, datetime.time):
        return ["t", value.isoformat()]
    if isinstance(value, datetime.timedelta):
        return ["td", str(value.total_seconds())]
    if isinstance(value, uuid.UUID):
        return ["u", str(value)]
    if isinstance(value, (bytes, bytearray, memoryview)):
        return ["x", bytes(value).hex()]
    if isinstance(value, (set, frozenset)):
        items = [canonical_value(v) for v in value]
        return ["set", sorted(items, key=_sort_key)]
    if isinstance(value, dict):
        pairs = [[canonical_value(k), canonical_value(v)] for k, v in value.items()]
        return ["map", sorted(pairs, key=lambda p: _sort_key(p[0]))]
    if isinstance(value, (list, tuple)):
        return ["seq", [canonical_value(v) for v in value]]
    return ["r", type(value).__qualname__, str(value)]


def _sort_key(item: Any) -> str:
    return json.dumps(item, sort_keys=True, separators=(",", ":"))


def _predicate(p: Predicate) -> list:
    return [p.boolean, p.column, p.operator, canonical_value(p.value)]


def _ordering(o: Ordering) -> list:
    return [o.column, "desc" if o.descending else "asc"]


class KeyFingerprinter:
    """
    Hash-based key builder for query specs.

    Uses SHA-256 over a compact JSON document of the spec to produce
    fixed-length keys regardless of predicate count or binding size.
    """

    __slots__ = ("_hash_length",)

    def __init__(self, hash_length: int = 40):
        """
        Args:
            hash_length: Length of hex hash suffix (max 64 for SHA-256)
        """
        self._hash_length = min(hash_length, 64)

    def document(self, spec: QuerySpec) -> str:
        """Stable serialization hashed by ``fingerprint``."""
        payload = {
            "entity": spec.entity_type,
            "storage": spec.storage,
            "where": [_predicate(p) for p in spec.predicates],
            "order": [_ordering(o) for o in spec.orderings],
            "limit": spec.limit,
            "offset": spec.offset,
            "cursor": canonical_value(spec.cursor),
            "with": sorted(spec.eager_load),
            "without": sorted(spec.eager_exclude),
            "scopes": sorted(spec.scopes),
            "select": [
                list(spec.select.columns),
                spec.select.aggregate,
                spec.select.aggregate_column,
            ],
            "distinct": spec.distinct,
        }
        return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    def fingerprint(self, spec: QuerySpec, prefix: str = "") -> str:
        """Build the cache key for ``spec``."""
        digest = hashlib.sha256(self.document(spec).encode("utf-8")).hexdigest()
        return f"{prefix}{digest[:self._hash_length]}"
