"""
Tests for query fingerprinting.

Covers:
- Structural identity → identical keys
- Discrimination between predicates, eager loads, select shapes
- Positional clause hashing vs. order-independent relation sets
- Canonical, type-tagged binding values
"""

from __future__ import annotations

import datetime
import decimal
import enum
import uuid

import pytest

from modelcache.core import Ordering, Predicate, QuerySpec, SelectShape
from modelcache.fingerprint import KeyFingerprinter, canonical_value


def make_spec(**overrides) -> QuerySpec:
    fields = {"entity_type": "app.models.Post", "storage": "posts"}
    fields.update(overrides)
    return QuerySpec(**fields)


@pytest.fixture
def fingerprinter():
    return KeyFingerprinter(hash_length=40)


class TestKeyShape:
    def test_prefix_and_length(self, fingerprinter):
        key = fingerprinter.fingerprint(make_spec(), "model_cache_post:")
        assert key.startswith("model_cache_post:")
        assert len(key) == len("model_cache_post:") + 40

    def test_hash_length_is_configurable(self):
        key = KeyFingerprinter(hash_length=16).fingerprint(make_spec())
        assert len(key) == 16

    def test_hash_length_capped_at_sha256(self):
        key = KeyFingerprinter(hash_length=100).fingerprint(make_spec())
        assert len(key) == 64

    def test_key_is_hex(self, fingerprinter):
        int(fingerprinter.fingerprint(make_spec()), 16)


class TestIdentity:
    def test_structurally_equal_specs_share_key(self, fingerprinter):
        a = make_spec(predicates=(Predicate("published", "=", True),), limit=10)
        b = make_spec(predicates=(Predicate("published", "=", True),), limit=10)
        assert a is not b
        assert fingerprinter.fingerprint(a) == fingerprinter.fingerprint(b)

    def test_eager_load_order_does_not_matter(self, fingerprinter):
        a = make_spec(eager_load=frozenset(["tags", "author"]))
        b = make_spec(eager_load=frozenset(["author", "tags"]))
        assert fingerprinter.fingerprint(a) == fingerprinter.fingerprint(b)

    def test_scope_names_are_order_independent(self, fingerprinter):
        a = make_spec(scopes=frozenset(["published", "recent"]))
        b = make_spec(scopes=frozenset(["recent", "published"]))
        assert fingerprinter.fingerprint(a) == fingerprinter.fingerprint(b)

    def test_document_is_stable_json(self, fingerprinter):
        spec = make_spec(orderings=(Ordering("id", descending=True),))
        assert fingerprinter.document(spec) == fingerprinter.document(spec)
        assert '"order":[["id","desc"]]' in fingerprinter.document(spec)


class TestDiscrimination:
    def test_predicate_values_differ(self, fingerprinter):
        published = make_spec(predicates=(Predicate("published", "=", True),))
        draft = make_spec(predicates=(Predicate("published", "=", False),))
        assert fingerprinter.fingerprint(published) != fingerprinter.fingerprint(draft)

    def test_eager_load_sets_differ(self, fingerprinter):
        with_tags = make_spec(eager_load=frozenset(["tags"]))
        without = make_spec()
        assert fingerprinter.fingerprint(with_tags) != fingerprinter.fingerprint(without)

    def test_excluded_relations_differ(self, fingerprinter):
        a = make_spec(eager_load=frozenset(["tags"]))
        b = make_spec(eager_load=frozenset(["tags"]), eager_exclude=frozenset(["tags"]))
        assert fingerprinter.fingerprint(a) != fingerprinter.fingerprint(b)

    def test_clause_order_is_positional(self, fingerprinter):
        p1 = Predicate("published", "=", True)
        p2 = Predicate("author_id", "=", 3)
        a = make_spec(predicates=(p1, p2))
        b = make_spec(predicates=(p2, p1))
        assert fingerprinter.fingerprint(a) != fingerprinter.fingerprint(b)

    def test_boolean_connective_matters(self, fingerprinter):
        a = make_spec(predicates=(Predicate("a", "=", 1), Predicate("b", "=", 2)))
        b = make_spec(predicates=(Predicate("a", "=", 1), Predicate("b", "=", 2, "or")))
        assert fingerprinter.fingerprint(a) != fingerprinter.fingerprint(b)

    @pytest.mark.parametrize("change", [
        {"limit": 5},
        {"offset": 5},
        {"cursor": ("id", 10)},
        {"distinct": True},
        {"orderings": (Ordering("id"),)},
        {"select": SelectShape(columns=(), aggregate="count")},
        {"select": SelectShape(columns=(), aggregate="sum", aggregate_column="views")},
        {"entity_type": "app.models.PostAlias"},
        {"storage": "archived_posts"},
    ])
    def test_each_field_participates(self, fingerprinter, change):
        assert fingerprinter.fingerprint(make_spec()) != fingerprinter.fingerprint(make_spec(**change))

    def test_aggregate_columns_differ(self, fingerprinter):
        a = make_spec(select=SelectShape(columns=(), aggregate="max", aggregate_column="views"))
        b = make_spec(select=SelectShape(columns=(), aggregate="max", aggregate_column="id"))
        assert fingerprinter.fingerprint(a) != fingerprinter.fingerprint(b)


class Color(enum.Enum):
    RED = "red"


class TestCanonicalValue:
    def test_scalar_types_never_collide(self):
        encoded = [canonical_value(v) for v in (1, "1", True, 1.0, decimal.Decimal("1"))]
        assert len({repr(e) for e in encoded}) == len(encoded)

    def test_equal_datetimes_encode_identically(self):
        a = datetime.datetime(2024, 5, 1, 12, 30)
        b = datetime.datetime(2024, 5, 1, 12, 30)
        assert canonical_value(a) == canonical_value(b) == ["dt", "2024-05-01T12:30:00"]

    def test_date_and_datetime_differ(self):
        assert canonical_value(datetime.date(2024, 5, 1)) != canonical_value(datetime.datetime(2024, 5, 1))

    def test_sets_are_sorted(self):
        assert canonical_value({3, 1, 2}) == canonical_value({2, 3, 1})

    def test_mappings_sorted_by_key(self):
        assert canonical_value({"b": 1, "a": 2}) == canonical_value({"a": 2, "b": 1})

    def test_sequences_keep_order(self):
        assert canonical_value([1, 2]) != canonical_value([2, 1])

    def test_misc_types(self):
        uid = uuid.UUID("12345678-1234-5678-1234-567812345678")
        assert canonical_value(uid) == ["u", str(uid)]
        assert canonical_value(b"\x01\xff") == ["x", "01ff"]
        assert canonical_value(Color.RED) == ["e", "Color", ["s", "red"]]
        assert canonical_value(None) is None

    def test_value_equal_bindings_share_key(self):
        fingerprinter = KeyFingerprinter()
        a = make_spec(predicates=(Predicate("created_at", ">", datetime.date(2024, 1, 1)),))
        b = make_spec(predicates=(Predicate("created_at", ">", datetime.date(2024, 1, 1)),))
        assert fingerprinter.fingerprint(a) == fingerprinter.fingerprint(b)


class TestPredicate:
    def test_unknown_operator_rejected(self):
        with pytest.raises(ValueError):
            Predicate("id", "~~", 1)
