"""Tests for the TTL search-result cache."""

from unittest.mock import patch

from carbonmatch_mcp.cache import TTLCache


class TestTTLCache:
    """Test expiry and size-bounded eviction."""

    def test_get_and_set(self):
        """Stored values are returned until they expire."""
        cache = TTLCache(ttl=60)
        cache.set("apple|food|en", ("match",))
        assert cache.get("apple|food|en") == ("match",)
        assert "apple|food|en" in cache

    def test_missing_key(self):
        """Missing keys return None."""
        assert TTLCache(ttl=60).get("nothing") is None

    def test_empty_tuple_is_a_hit(self):
        """A cached miss (empty tuple) is distinguishable from no entry."""
        cache = TTLCache(ttl=60)
        cache.set("unobtainium|general|en", ())
        assert cache.get("unobtainium|general|en") == ()

    def test_cached_miss_expires(self):
        """A cached miss is a hit until the TTL passes, then the key is absent."""
        cache = TTLCache(ttl=10)
        with patch("carbonmatch_mcp.cache.time.time", return_value=1000.0):
            cache.set("unobtainium|general|en", ())
        with patch("carbonmatch_mcp.cache.time.time", return_value=1005.0):
            assert "unobtainium|general|en" in cache
        with patch("carbonmatch_mcp.cache.time.time", return_value=1011.0):
            assert cache.get("unobtainium|general|en") is None

    def test_expiry(self):
        """Entries older than the TTL are dropped on read."""
        cache = TTLCache(ttl=10)
        with patch("carbonmatch_mcp.cache.time.time", return_value=1000.0):
            cache.set("k", 1)
        with patch("carbonmatch_mcp.cache.time.time", return_value=1011.0):
            assert cache.get("k") is None
        assert len(cache) == 0

    def test_keys_skip_expired(self):
        """keys() lists only live entries."""
        cache = TTLCache(ttl=10)
        with patch("carbonmatch_mcp.cache.time.time", return_value=1000.0):
            cache.set("old", 1)
        with patch("carbonmatch_mcp.cache.time.time", return_value=1008.0):
            cache.set("new", 2)
        with patch("carbonmatch_mcp.cache.time.time", return_value=1012.0):
            assert cache.keys() == ["new"]

    def test_max_size_evicts_oldest(self):
        """Over max_size, the oldest entries go first."""
        cache = TTLCache(ttl=60, max_size=2)
        for i, key in enumerate(("a", "b", "c")):
            with patch("carbonmatch_mcp.cache.time.time", return_value=1000.0 + i):
                cache.set(key, i)
        assert len(cache) == 2
        with patch("carbonmatch_mcp.cache.time.time", return_value=1005.0):
            assert cache.get("a") is None
            assert cache.get("c") == 2

    def test_clear(self):
        """clear() removes everything."""
        cache = TTLCache(ttl=60)
        cache.set("a", 1)
        cache.clear()
        assert len(cache) == 0
