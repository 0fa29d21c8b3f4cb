"""Unit tests for the in-memory rendition tier."""

import threading

import pytest

from imgserve.storage.memory_cache import MemoryArtifactCache


class TestMemoryArtifactCache:
    """Tests for LRU + TTL behaviour."""

    def test_put_then_get(self):
        cache = MemoryArtifactCache(max_size=4, ttl_seconds=60)
        cache.put("k1", b"data")

        assert cache.get("k1") == b"data"
        assert cache.stats()["hits"] == 1

    def test_miss_counts(self):
        cache = MemoryArtifactCache()
        assert cache.get("nope") is None
        assert cache.stats()["misses"] == 1

    def test_lru_eviction(self):
        cache = MemoryArtifactCache(max_size=2, ttl_seconds=60)
        cache.put("a", b"1")
        cache.put("b", b"2")
        cache.get("a")  # a becomes most recently used
        cache.put("c", b"3")

        assert cache.get("b") is None
        assert cache.get("a") == b"1"
        assert cache.get("c") == b"3"

    def test_ttl_expiry(self, mocker):
        clock = mocker.patch("imgserve.storage.memory_cache.time.time", return_value=1000.0)
        cache = MemoryArtifactCache(max_size=4, ttl_seconds=10)
        cache.put("k", b"v")

        clock.return_value = 1009.0
        assert cache.get("k") == b"v"

        clock.return_value = 1010.0
        assert cache.get("k") is None
        assert cache.stats()["size"] == 0

    def test_clear(self):
        cache = MemoryArtifactCache()
        cache.put("a", b"1")
        cache.put("b", b"2")

        assert cache.clear() == 2
        assert cache.stats()["size"] == 0

    def test_hit_rate(self):
        cache = MemoryArtifactCache()
        cache.put("a", b"1")
        cache.get("a")
        cache.get("missing")

        assert cache.stats()["hit_rate_percent"] == pytest.approx(50.0)

    def test_concurrent_access(self):
        cache = MemoryArtifactCache(max_size=8, ttl_seconds=60)

        def worker(n):
            for i in range(200):
                cache.put(f"{n}-{i % 10}", b"x")
                cache.get(f"{n}-{(i + 1) % 10}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert cache.stats()["size"] <= 8
