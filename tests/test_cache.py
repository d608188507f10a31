"""Tests for the TTL read cache."""

from tierstore.cache import MISSING, ReadCache


class TestReadCache:
    """Test time-bounded caching of decoded values."""

    def test_hit_within_ttl(self, clock):
        cache = ReadCache(ttl=10, clock=clock)
        cache.set("k", {"a": 1})

        clock.advance(9)

        assert cache.get("k") == {"a": 1}
        assert cache.hits == 1

    def test_miss_after_ttl(self, clock):
        cache = ReadCache(ttl=10, clock=clock)
        cache.set("k", "v")

        clock.advance(10)

        assert cache.get("k") is MISSING
        assert len(cache) == 0
        assert cache.misses == 1

    def test_entry_expiry_bounds_cache(self, clock):
        """A record never outlives the entry it was read from."""
        cache = ReadCache(ttl=300, clock=clock)
        cache.set("k", "v", expires_at=clock.now + 1)

        clock.advance(2)

        assert cache.get("k") is MISSING

    def test_values_are_copied(self, clock):
        cache = ReadCache(ttl=10, clock=clock)
        value = {"items": [1]}
        cache.set("k", value)

        value["items"].append(2)
        cache.get("k")["items"].append(3)

        assert cache.get("k") == {"items": [1]}

    def test_invalidate_and_clear(self, clock):
        cache = ReadCache(ttl=10, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.invalidate("a")
        assert cache.get("a") is MISSING
        assert cache.get("b") == 2

        cache.clear()
        assert cache.get("b") is MISSING

    def test_zero_ttl_disables_cache(self, clock):
        cache = ReadCache(ttl=0, clock=clock)
        cache.set("k", "v")
        assert cache.get("k") is MISSING

    def test_purge_expired(self, clock):
        cache = ReadCache(ttl=10, clock=clock)
        cache.set("old", 1)
        clock.advance(6)
        cache.set("new", 2)
        clock.advance(5)

        assert cache.purge_expired() == 1
        assert cache.get_stats()["size"] == 1

    def test_falsy_values_are_hits(self, clock):
        cache = ReadCache(ttl=10, clock=clock)
        cache.set("zero", 0)
        cache.set("none", None)

        assert cache.get("zero") == 0
        assert cache.get("none") is None
