"""
Tests for AudioCache.

Tests cover:
- Exact-text hits and misses
- TTL boundary on read
- LRU eviction at capacity
- Probabilistic sweep on store
- Statistics
"""
import threading

from narrator.tts.cache import AudioCache


def _cache(clock, ttl=60.0, max_items=16, sweep_probability=0.0, rand=lambda: 1.0):
    return AudioCache(
        ttl_seconds=ttl,
        max_items=max_items,
        sweep_probability=sweep_probability,
        clock=clock,
        rand=rand,
    )


class TestLookup:
    """Hits and misses."""

    def test_set_and_get(self, clock):
        cache = _cache(clock)
        cache.set("Hello world.", "UklGRg==")

        entry = cache.get("Hello world.")

        assert entry is not None
        assert entry.audio_base64 == "UklGRg=="
        assert entry.key == "Hello world."
        assert entry.created_at == clock.now

    def test_exact_match_only(self, clock):
        cache = _cache(clock)
        cache.set("Hello world.", "A")

        assert cache.get("Hello world. ") is None
        assert cache.get("hello world.") is None

    def test_overwrite_refreshes_entry(self, clock):
        cache = _cache(clock, ttl=10)
        cache.set("k", "old")
        clock.advance(8)
        cache.set("k", "new")
        clock.advance(8)

        entry = cache.get("k")
        assert entry is not None
        assert entry.audio_base64 == "new"


class TestTtl:
    """Expiry on read."""

    def test_fresh_entry_served(self, clock):
        cache = _cache(clock, ttl=60)
        cache.set("k", "v")
        clock.advance(59.9)
        assert cache.get("k") is not None

    def test_entry_at_ttl_is_expired(self, clock):
        cache = _cache(clock, ttl=60)
        cache.set("k", "v")
        clock.advance(60)

        assert cache.get("k") is None
        assert "k" not in cache
        assert cache.stats()["expirations"] == 1

    def test_expired_entry_not_resurrected(self, clock):
        cache = _cache(clock, ttl=1)
        cache.set("k", "v")
        clock.advance(5)
        cache.get("k")
        clock.advance(-5)
        assert cache.get("k") is None


class TestEviction:
    """Capacity bound."""

    def test_lru_eviction(self, clock):
        cache = _cache(clock, max_items=2)
        cache.set("a", "1")
        cache.set("b", "2")
        cache.get("a")
        cache.set("c", "3")

        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache
        assert len(cache) == 2

    def test_delete_and_clear(self, clock):
        cache = _cache(clock)
        cache.set("a", "1")
        cache.set("b", "2")

        assert cache.delete("a") is True
        assert cache.delete("a") is False
        assert cache.clear() == 1
        assert len(cache) == 0


class TestSweep:
    """Lazy removal of expired entries."""

    def test_sweep_runs_when_rand_below_probability(self, clock):
        cache = _cache(clock, ttl=10, sweep_probability=0.1, rand=lambda: 0.05)
        cache.set("old", "1")
        clock.advance(11)
        cache.set("new", "2")

        assert "old" not in cache
        assert "new" in cache

    def test_no_sweep_when_rand_above_probability(self, clock):
        cache = _cache(clock, ttl=10, sweep_probability=0.1, rand=lambda: 0.5)
        cache.set("old", "1")
        clock.advance(11)
        cache.set("new", "2")

        # Still physically present, but never served
        assert "old" in cache
        assert cache.get("old") is None

    def test_cleanup_expired(self, clock):
        cache = _cache(clock, ttl=10)
        cache.set("a", "1")
        clock.advance(5)
        cache.set("b", "2")
        clock.advance(6)

        assert cache.cleanup_expired() == 1
        assert "a" not in cache
        assert "b" in cache


class TestStats:
    """Counters."""

    def test_hit_miss_counters(self, clock):
        cache = _cache(clock)
        cache.set("a", "1")
        cache.get("a")
        cache.get("a")
        cache.get("missing")

        stats = cache.stats()
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["size"] == 1

    def test_concurrent_sets(self):
        cache = AudioCache(ttl_seconds=60, max_items=50, sweep_probability=0.0)

        def writer(offset):
            for i in range(100):
                cache.set(f"text-{offset}-{i}", "v")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(cache) == 50
