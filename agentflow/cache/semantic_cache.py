"""
=============================================================================
SEMANTIC RESPONSE CACHE
=============================================================================

Approximate-match store mapping normalized prompt text to a previously
produced answer.

EMBEDDING:
----------
Not a learned embedding. Each whitespace-separated word is hashed with a
32-bit rolling string hash; the hash picks one of `dim` positions and adds
a weight of 1/(word_index + 1). The vector is L2-normalized. The transform is
cheap and reproducible across processes.

SHARING:
--------
One instance is shared by every concurrent run in the process. All
read-modify-write sequences (lookup + stats update, store + eviction) run
under a single lock.
=============================================================================
"""

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

import numpy as np

from agentflow.analytics.metrics import record_cache_lookup, set_cache_entries
from agentflow.errors import CacheError

logger = logging.getLogger(__name__)


@dataclass
class SemanticCacheEntry:
    """One cached answer."""

    key: str
    response: str
    embedding: np.ndarray
    last_access: float
    hit_count: int = 0


@dataclass
class CacheLookupResult:
    response: str
    similarity: float
    key: str


@dataclass
class CacheStats:
    """Cache statistics for monitoring."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total


def normalize_text(text: str) -> str:
    """Lowercase and collapse whitespace."""
    return " ".join(text.lower().split())


def string_hash(word: str) -> int:
    """32-bit signed rolling hash (h = h * 31 + code point)."""
    h = 0
    for char in word:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def embed(text: str, dim: int = 384) -> np.ndarray:
    """Weighted positional hash embedding, L2-normalized."""
    vector = np.zeros(dim, dtype=np.float64)
    for index, word in enumerate(text.lower().split()):
        position = abs(string_hash(word)) % dim
        vector[position] += 1.0 / (index + 1)

    norm = np.linalg.norm(vector)
    if norm > 0:
        vector /= norm
    return vector


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    if a.shape != b.shape:
        return 0.0
    norm_product = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm_product == 0.0:
        return 0.0
    return float(np.clip(np.dot(a, b) / norm_product, -1.0, 1.0))


class SemanticCache:
    """
    Bounded approximate-match cache.

    Usage:
        cache = SemanticCache(capacity=100, threshold=0.85)
        cache.store("What is 2+2?", "4")
        hit = cache.lookup("what is 2+2?")  # CacheLookupResult or None
    """

    def __init__(
        self,
        capacity: int = 100,
        threshold: float = 0.85,
        dim: int = 384,
        clock: Callable[[], float] = time.time,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.threshold = threshold
        self.dim = dim
        self._clock = clock
        self._entries: dict[str, SemanticCacheEntry] = {}
        self._stats = CacheStats()
        self._lock = threading.RLock()

    @staticmethod
    def make_key(text: str) -> str:
        return hashlib.sha256(text.lower().strip().encode("utf-8")).hexdigest()[:32]

    def _embed(self, text: str) -> np.ndarray:
        try:
            return embed(text, self.dim)
        except Exception as e:
            raise CacheError(f"Embedding failed: {e}") from e

    def lookup(self, text: str) -> CacheLookupResult | None:
        """
        Return the most similar entry above the threshold, or None.

        A hit refreshes the entry's last_access and increments hit_count.
        """
        query = self._embed(text)

        with self._lock:
            best: SemanticCacheEntry | None = None
            best_similarity = 0.0
            for entry in self._entries.values():
                similarity = cosine_similarity(query, entry.embedding)
                if similarity > self.threshold and similarity > best_similarity:
                    best, best_similarity = entry, similarity

            if best is None:
                self._stats.misses += 1
                record_cache_lookup(hit=False)
                return None

            best.hit_count += 1
            best.last_access = self._clock()
            self._stats.hits += 1

        record_cache_lookup(hit=True)
        logger.info(f"[CACHE] Semantic hit similarity={best_similarity:.3f} key={best.key}")
        return CacheLookupResult(response=best.response, similarity=best_similarity, key=best.key)

    def store(self, text: str, response: str) -> str:
        """
        Insert (or replace) the answer for `text`.

        Inserting a new key at capacity evicts the least recently accessed
        entry first, so the cache never holds more than `capacity` entries.
        """
        key = self.make_key(text)
        embedding = self._embed(text)

        with self._lock:
            if key not in self._entries and len(self._entries) >= self.capacity:
                oldest_key = min(self._entries, key=lambda k: self._entries[k].last_access)
                del self._entries[oldest_key]
                self._stats.evictions += 1
                logger.debug(f"[CACHE] Evicted key={oldest_key}")

            self._entries[key] = SemanticCacheEntry(
                key=key,
                response=response,
                embedding=embedding,
                last_access=self._clock(),
            )
            size = len(self._entries)

        set_cache_entries(size)
        logger.info(f"[CACHE] Stored response ({size}/{self.capacity} entries)")
        return key

    def get(self, key: str) -> SemanticCacheEntry | None:
        with self._lock:
            return self._entries.get(key)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._stats = CacheStats()
        set_cache_entries(0)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict:
        """Snapshot of cache statistics."""
        with self._lock:
            return {
                "size": len(self._entries),
                "capacity": self.capacity,
                "similarity_threshold": self.threshold,
                "hits": self._stats.hits,
                "misses": self._stats.misses,
                "evictions": self._stats.evictions,
                "hit_rate": self._stats.hit_rate,
                "entry_hits": sum(e.hit_count for e in self._entries.values()),
            }
