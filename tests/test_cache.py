"""
Unit tests for the public key cache.
"""

import time

import pytest

from vcledger.cache import KeyCache


@pytest.fixture
def cache() -> KeyCache:
    return KeyCache(max_size=3, default_ttl=60)


class TestKeyCacheBasic:
    """Basic KeyCache tests."""

    def test_set_and_get(self, cache):
        """set() stores value, get() retrieves it for the same fingerprint."""
        cache.set("acme", "fp1", "key-object")
        assert cache.get("acme", "fp1") == "key-object"

    def test_get_nonexistent(self, cache):
        """get() returns None for nonexistent key."""
        assert cache.get("nobody", "fp") is None

    def test_fingerprint_mismatch_is_a_miss(self, cache):
        """An entry built from another JWK is never served."""
        cache.set("acme", "old-fp", "old-key")

        assert cache.get("acme", "new-fp") is None
        # The stale entry is dropped on the way
        assert len(cache) == 0

    def test_invalidate(self, cache):
        """invalidate() removes the entry."""
        cache.set("acme", "fp", "key")
        assert cache.invalidate("acme") is True
        assert cache.get("acme", "fp") is None
        assert cache.invalidate("acme") is False

    def test_clear(self, cache):
        cache.set("a", "fp", 1)
        cache.set("b", "fp", 2)
        cache.clear()
        assert len(cache) == 0


class TestKeyCacheExpiry:
    """TTL and eviction tests."""

    def test_expired_entry_is_a_miss(self, cache):
        """Entries past their TTL are not returned."""
        cache.set("acme", "fp", "key", ttl=-1)
        assert cache.get("acme", "fp") is None

    def test_ttl_not_yet_expired(self, cache):
        cache.set("acme", "fp", "key", ttl=1)
        time.sleep(0.01)
        assert cache.get("acme", "fp") == "key"

    def test_lru_eviction(self, cache):
        """The least recently used entry is evicted first."""
        cache.set("a", "fp", 1)
        cache.set("b", "fp", 2)
        cache.set("c", "fp", 3)
        cache.get("a", "fp")
        cache.set("d", "fp", 4)

        assert cache.get("b", "fp") is None
        assert cache.get("a", "fp") == 1
        assert cache.stats["evictions"] == 1


class TestKeyCacheStats:
    """Statistics tests."""

    def test_hit_ratio(self, cache):
        cache.set("a", "fp", 1)
        cache.get("a", "fp")
        cache.get("missing", "fp")

        assert cache.stats["hits"] == 1
        assert cache.stats["misses"] == 1
        assert cache.hit_ratio == 0.5

    def test_empty_hit_ratio(self, cache):
        assert cache.hit_ratio == 0.0
