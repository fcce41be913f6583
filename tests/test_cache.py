"""
Fallback Cache Tests
====================
"""

import time

from civix_core.cache import CacheManager


class TestCacheManager:
    """Tests for the TTL cache."""

    def test_set_and_get(self):
        """Should return freshly cached data."""
        cache = CacheManager()

        cache.set("issue_1", {"title": "pothole"})

        assert cache.get("issue_1") == {"title": "pothole"}

    def test_miss_returns_none(self):
        """Should return None for unknown keys."""
        cache = CacheManager()

        assert cache.get("missing") is None

    def test_entry_expires_after_ttl(self):
        """Expired entries should miss and be removed."""
        cache = CacheManager()
        cache.set("k", "v", ttl=0.1)
        cache.set("other", "x")

        assert cache.get("k") == "v"

        time.sleep(0.15)

        assert cache.get("k") is None
        stats = cache.get_stats()
        assert stats["size"] == 1
        assert stats["keys"] == ["other"]

    def test_ttl_measured_from_write(self):
        """Reads should not extend an entry's lifetime."""
        cache = CacheManager()
        cache.set("k", "v", ttl=0.2)

        time.sleep(0.12)
        assert cache.get("k") == "v"
        time.sleep(0.12)

        assert cache.get("k") is None

    def test_default_ttl(self):
        """Entries without a TTL should use the default."""
        cache = CacheManager(default_ttl=42)
        cache.set("k", "v")

        assert cache._entries["k"].ttl == 42

    def test_last_writer_wins(self):
        """A second set should replace the first."""
        cache = CacheManager()
        cache.set("k", 1)
        cache.set("k", 2)

        assert cache.get("k") == 2
        assert cache.get_stats()["size"] == 1

    def test_delete_and_clear(self):
        """Should remove single entries and everything."""
        cache = CacheManager()
        cache.set("a", 1)
        cache.set("b", 2)

        cache.delete("a")
        cache.delete("not-there")
        assert cache.get_stats() == {"size": 1, "keys": ["b"]}

        cache.clear()
        assert cache.get_stats() == {"size": 0, "keys": []}
