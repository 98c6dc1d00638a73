"""
Tests for cache key generation and the in-process indices.
"""

import re

import pytest

from replivity.cache.keys import DEFAULT_KEY_PREFIX, KeyIndex, TagIndex, generate_key, glob_match


# =============================================================================
# KEY GENERATION TESTS
# =============================================================================

class TestGenerateKey:

    def test_key_format(self):
        key = generate_key("user:profile", {"user_id": "42"}, ["user"])
        assert key.startswith(f"{DEFAULT_KEY_PREFIX}user:profile:")
        assert re.fullmatch(r"[0-9a-f]{32}", key.rsplit(":", 1)[1])

    def test_deterministic(self):
        assert generate_key("q", {"a": 1}) == generate_key("q", {"a": 1})

    def test_param_order_does_not_matter(self):
        assert generate_key("q", {"a": 1, "b": 2}) == generate_key("q", {"b": 2, "a": 1})

    def test_tag_order_does_not_matter(self):
        assert generate_key("q", None, ["b", "a"]) == generate_key("q", None, ["a", "b"])

    def test_different_inputs_give_different_keys(self):
        base = generate_key("q", {"a": 1}, ["t"])
        assert generate_key("q", {"a": 2}, ["t"]) != base
        assert generate_key("q", {"a": 1}, ["u"]) != base
        assert generate_key("r", {"a": 1}, ["t"]) != base

    def test_missing_params_equal_empty_params(self):
        assert generate_key("q") == generate_key("q", {}, [])

    def test_custom_prefix(self):
        assert generate_key("q", prefix="other:").startswith("other:q:")

    def test_datetime_params(self):
        from datetime import datetime
        key1 = generate_key("q", {"date_from": datetime(2024, 1, 15)})
        key2 = generate_key("q", {"date_from": datetime(2024, 1, 16)})
        assert key1 != key2


class TestGlobMatch:

    @pytest.mark.parametrize("pattern,key,expected", [
        ("a:b", "a:b", True),
        ("a:b", "a:bc", False),
        ("a:*", "a:b:c", True),
        ("*", "", True),
        ("*:c", "a:b:c", True),
        ("a:*:c", "a:b:c", True),
        ("a:*:c", "a:c", False),
        ("a*b*c", "aXbYc", True),
        ("a*b*c", "aXcYb", False),
        ("a.b*", "aXb", False),
    ])
    def test_patterns(self, pattern, key, expected):
        assert glob_match(pattern, key) is expected


# =============================================================================
# INDEX TESTS
# =============================================================================

class TestKeyIndex:

    def test_add_and_contains(self):
        index = KeyIndex()
        index.add("user:1")
        index.add("user:1")

        assert "user:1" in index
        assert "user:" not in index
        assert len(index) == 1

    def test_match_by_prefix(self):
        index = KeyIndex()
        for key in ("user:1", "user:2", "blog:1", "user"):
            index.add(key)

        assert sorted(index.match("user:*")) == ["user:1", "user:2"]
        assert sorted(index.match("*:1")) == ["blog:1", "user:1"]
        assert index.match("user") == ["user"]
        assert index.match("missing:*") == []

    def test_discard_prunes_branches(self):
        index = KeyIndex()
        index.add("abc")
        index.add("abd")
        index.discard("abc")
        index.discard("abc")
        index.discard("zzz")

        assert len(index) == 1
        assert list(index) == ["abd"]

        index.discard("abd")
        assert len(index) == 0
        assert index.match("a*") == []

    def test_digest_suffixes_share_one_stem_node(self):
        index = KeyIndex()
        keys = [generate_key("user:profile", {"user_id": i}) for i in range(1000)]
        for key in keys:
            index.add(key)

        stem = f"{DEFAULT_KEY_PREFIX}user:profile:"
        assert len(index) == 1000
        assert index.node_count() == len(stem) + 1
        assert all(key in index for key in keys)

    def test_match_into_digest(self):
        index = KeyIndex()
        key = generate_key("user:profile", {"user_id": 1})
        other = generate_key("user:profile", {"user_id": 2})
        index.add(key)
        index.add(other)

        assert index.match(key[:-4] + "*") == [key]
        assert sorted(index.match(f"{DEFAULT_KEY_PREFIX}user:*")) == sorted([key, other])
        assert index.match(f"{DEFAULT_KEY_PREFIX}user:profile:zz*") == []

    def test_discard_prunes_stem(self):
        index = KeyIndex()
        key = generate_key("blog:posts")
        index.add(key)
        index.discard(key)

        assert key not in index
        assert index.node_count() == 1

    def test_clear(self):
        index = KeyIndex()
        index.add("a")
        index.clear()
        assert len(index) == 0
        assert "a" not in index


class TestTagIndex:

    def test_add_and_lookup(self):
        index = TagIndex()
        index.add("k1", ["user", "analytics"])
        index.add("k2", ["user"])

        assert index.keys_for("user") == {"k1", "k2"}
        assert index.keys_for("analytics") == {"k1"}
        assert index.keys_for("missing") == set()

    def test_remove_drops_empty_tags(self):
        index = TagIndex()
        index.add("k1", ["user"])
        index.remove("k1", ["user", "never-added"])

        assert "user" not in index
        assert len(index) == 0

    def test_keys_for_returns_a_copy(self):
        index = TagIndex()
        index.add("k1", ["user"])
        index.keys_for("user").add("k2")
        assert index.keys_for("user") == {"k1"}

    def test_pop(self):
        index = TagIndex()
        index.add("k1", ["user"])
        assert index.pop("user") == {"k1"}
        assert index.pop("user") == set()
        assert index.tags() == []
