"""
In-Memory Result Cache with TTL Support.

Stores finished generations keyed by the exact source text, so repeating a
request within the TTL returns the stored audio without touching the remote
model. Features:
    - Exact-text keys (whitespace variants are different keys)
    - TTL expiration checked on every read
    - LRU eviction when capacity is reached
    - Opportunistic sweep of expired entries on a fraction of stores
    - Thread-safe operations and statistics (hits, misses, expirations)

Nothing is persisted; the cache starts empty on every process start.

Example:
    >>> cache = AudioCache(ttl_seconds=3600, max_items=256)
    >>> cache.set("Hello world.", "UklGRi...")
    >>> entry = cache.get("Hello world.")
    >>> entry.audio_base64
    'UklGRi...'
"""
from __future__ import annotations

import random
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from narrator.core.config import Defaults
from narrator.core.logging import get_logger, info, verbose

_LOG = get_logger("narrator.cache")


def _preview(key: str) -> str:
    return key[:24].replace("\n", " ")


@dataclass
class CacheEntry:
    """
    A cached generation.

    Attributes:
        key: Full source text the audio was generated from.
        audio_base64: Base64-encoded WAV artifact.
        created_at: Unix timestamp when the entry was stored.
    """
    key: str
    audio_base64: str
    created_at: float


class AudioCache:
    """
    Thread-safe exact-text cache with TTL, LRU bound and lazy sweeping.

    An entry is served only while ``now - created_at < ttl_seconds``; an
    expired entry found on read is dropped and reported as a miss. Entries
    that are never read again are removed by the sweep that runs on
    ``sweep_probability`` of stores, so physical eviction may lag.

    Attributes:
        ttl_seconds: Entry lifetime in seconds.
        max_items: Maximum number of entries kept.
        sweep_probability: Fraction of set() calls that sweep expired entries.
    """

    def __init__(
        self,
        ttl_seconds: float = Defaults.CACHE_TTL_MS / 1000.0,
        max_items: int = Defaults.CACHE_MAX_ITEMS,
        sweep_probability: float = Defaults.CACHE_SWEEP_PROBABILITY,
        clock: Callable[[], float] = time.time,
        rand: Callable[[], float] = random.random,
    ):
        self.ttl_seconds = float(ttl_seconds)
        self.max_items = int(max_items)
        self.sweep_probability = float(sweep_probability)
        self._clock = clock
        self._rand = rand

        # OrderedDict maintains access order for LRU tracking
        self._d: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._expirations = 0

    def get(self, key: str) -> Optional[CacheEntry]:
        """
        Look up an entry by exact text.

        Returns:
            The entry if present and younger than the TTL, else None.
        """
        with self._lock:
            entry = self._d.get(key)
            if entry is None:
                self._misses += 1
                return None

            age = self._clock() - entry.created_at
            if age >= self.ttl_seconds:
                del self._d[key]
                self._expirations += 1
                self._misses += 1
                verbose(_LOG, "expired", key=_preview(key), age=round(age, 1))
                return None

            self._d.move_to_end(key)
            self._hits += 1

        info(_LOG, "hit", key=_preview(key), age=round(age, 1))
        return entry

    def set(self, key: str, audio_base64: str) -> CacheEntry:
        """
        Store (or overwrite) the audio for key.

        Evicts the least recently used entries when over capacity and, with
        probability sweep_probability, removes every expired entry.
        """
        entry = CacheEntry(key=key, audio_base64=audio_base64, created_at=self._clock())

        with self._lock:
            self._d[key] = entry
            self._d.move_to_end(key)

            while len(self._d) > self.max_items:
                self._d.popitem(last=False)

        verbose(_LOG, "set", key=_preview(key), size=len(audio_base64))

        if self.sweep_probability > 0 and self._rand() < self.sweep_probability:
            self.cleanup_expired()

        return entry

    def delete(self, key: str) -> bool:
        with self._lock:
            if key in self._d:
                del self._d[key]
                return True
            return False

    def clear(self) -> int:
        """Remove every entry; returns how many were removed."""
        with self._lock:
            count = len(self._d)
            self._d.clear()
            return count

    def cleanup_expired(self) -> int:
        """
        Remove all entries older than the TTL.

        Returns:
            Number of entries removed.
        """
        cutoff = self._clock() - self.ttl_seconds

        with self._lock:
            expired_keys = [
                key for key, entry in self._d.items()
                if entry.created_at <= cutoff
            ]
            for key in expired_keys:
                del self._d[key]
            self._expirations += len(expired_keys)

        if expired_keys:
            verbose(_LOG, "cleanup", removed=len(expired_keys))

        return len(expired_keys)

    def stats(self) -> Dict[str, float]:
        """
        Get cache statistics.

        Returns:
            Dictionary with hits, misses, size, max_items, ttl_seconds
            and expirations.
        """
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._d),
                "max_items": self.max_items,
                "ttl_seconds": self.ttl_seconds,
                "expirations": self._expirations,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._d)

    def __contains__(self, key: str) -> bool:
        """
        Check if key exists in cache.

        Note: This does NOT check TTL expiration.
        Use get() for full TTL-aware lookup.
        """
        with self._lock:
            return key in self._d
