"""Tests for polyvalid.presence module."""

import json

import pytest

from polyvalid import PresenceMap, compute_presence
from polyvalid.presence import MAX_RECURSION_DEPTH


class TestComputePresence:
    """Test building presence maps from raw JSON."""

    def test_nested_object(self):
        pm = compute_presence(b'{"user": {"name": "Alice", "age": 30}}')
        assert pm == {"user", "user.name", "user.age"}
        assert pm.leaf_paths() == ["user.age", "user.name"]

    def test_arrays_record_indexes(self):
        pm = compute_presence('{"items": [{"price": 1}, {"price": 2}], "tags": []}')
        assert pm == {
            "items",
            "items.0",
            "items.0.price",
            "items.1",
            "items.1.price",
            "tags",
        }
        assert pm.leaf_paths() == ["items.0.price", "items.1.price", "tags"]

    def test_root_array(self):
        pm = compute_presence("[1, {\"a\": true}]")
        assert pm == {"0", "1", "1.a"}

    def test_scalar_root_is_empty(self):
        assert len(compute_presence("42")) == 0
        assert len(compute_presence('"text"')) == 0

    def test_null_values_are_present(self):
        pm = compute_presence('{"nickname": null}')
        assert pm.has("nickname")

    def test_invalid_json_raises(self):
        with pytest.raises(json.JSONDecodeError):
            compute_presence(b"{not json")

    def test_idempotent(self):
        raw = b'{"a": {"b": [1, 2, {"c": 3}]}, "d": "x"}'
        assert compute_presence(raw) == compute_presence(raw)

    def test_depth_limit_does_not_fail(self):
        depth = MAX_RECURSION_DEPTH + 50
        raw = '{"a": ' * depth + "1" + "}" * depth

        pm = compute_presence(raw)

        # Keys below the depth bound are silently omitted
        assert len(pm) == MAX_RECURSION_DEPTH + 1
        assert pm.has("a")


class TestPresenceMap:
    """Test PresenceMap queries."""

    def test_has_is_exact(self):
        pm = PresenceMap({"address", "address.city"})
        assert pm.has("address.city")
        assert not pm.has("address.street")
        assert "address" in pm

    def test_has_prefix_matches_whole_segments(self):
        pm = PresenceMap({"address", "address.city"})
        assert pm.has_prefix("address")
        assert pm.has_prefix("address.city")
        assert not pm.has_prefix("addr")
        assert not pm.has_prefix("address.ci")

    def test_has_prefix_without_recorded_ancestor(self):
        pm = PresenceMap({"a.b.c"})
        assert pm.has_prefix("a")
        assert pm.has_prefix("a.b")

    def test_leaf_invariant(self):
        pm = compute_presence(
            b'{"user": {"name": "A", "roles": ["x", "y"], "meta": {}}, "n": 1, "user-x": 2, "user2": 3}'
        )
        leaves = pm.leaf_paths()
        assert leaves == sorted(leaves)
        for leaf in leaves:
            assert not any(other.startswith(leaf + ".") for other in pm)
        assert "user2" in leaves
        assert "user-x" in leaves
        assert "user" not in leaves

    def test_equality_and_hash(self):
        a = PresenceMap(["x", "y"])
        b = PresenceMap(("y", "x"))
        assert a == b
        assert hash(a) == hash(b)
        assert a == frozenset({"x", "y"})
        assert a != PresenceMap(["x"])

    def test_iteration_and_len(self):
        pm = PresenceMap(["a", "a.b"])
        assert sorted(pm) == ["a", "a.b"]
        assert len(pm) == 2
        assert repr(pm) == "PresenceMap(['a', 'a.b'])"
