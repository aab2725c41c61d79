from __future__ import annotations

"""In-process TTL caches used by the retrieval engine."""

import hashlib
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from doc_context.rag.types import DocumentChunk, SearchResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


def fingerprint(*parts: str) -> str:
    """Return a SHA-256 hex digest over the given parts."""
    digest = hashlib.sha256()
    for part in parts:
        digest.update(part.encode("utf-8"))
        digest.update(b"\x1f")
    return digest.hexdigest()


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    timestamp: float

    def is_fresh(self, ttl: float, now: float) -> bool:
        return now - self.timestamp < ttl


class TTLCache(Generic[T]):
    """Bounded cache with time-based expiry and oldest-first eviction.

    Every write may trigger a sweep of expired entries (with probability
    ``cleanup_probability``); after that, entries with the oldest timestamps
    are evicted until the cache is within ``max_size``.
    """

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        max_size: int,
        cleanup_probability: float = 0.1,
        clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be greater than zero")
        if max_size <= 0:
            raise ValueError("max_size must be greater than zero")
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self.cleanup_probability = cleanup_probability
        self._clock = clock
        self._rng = rng
        self._entries: dict[str, CacheEntry[T]] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.is_fresh(self.ttl_seconds, self._clock())

    def get(self, key: str) -> T | None:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if not entry.is_fresh(self.ttl_seconds, self._clock()):
            del self._entries[key]
            self._expirations += 1
            self._misses += 1
            return None
        self._hits += 1
        return entry.value

    def set(self, key: str, value: T) -> None:
        self._entries[key] = CacheEntry(value=value, timestamp=self._clock())
        if self._rng() < self.cleanup_probability:
            self.purge_expired()
        self._enforce_size()

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        """Drop every entry and return how many were removed."""
        removed = len(self._entries)
        self._entries.clear()
        return removed

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [
            key for key, entry in self._entries.items() if not entry.is_fresh(self.ttl_seconds, now)
        ]
        for key in expired:
            del self._entries[key]
        self._expirations += len(expired)
        return len(expired)

    def _enforce_size(self) -> None:
        overflow = len(self._entries) - self.max_size
        if overflow <= 0:
            return
        oldest = sorted(self._entries.items(), key=lambda item: item[1].timestamp)[:overflow]
        for key, _ in oldest:
            del self._entries[key]
        self._evictions += overflow
        logger.debug("cache_evicted", extra={"cache": self.name, "evicted": overflow})

    def get_stats(self) -> dict[str, Any]:
        now = self._clock()
        expired = sum(
            1 for entry in self._entries.values() if not entry.is_fresh(self.ttl_seconds, now)
        )
        lookups = self._hits + self._misses
        return {
            "name": self.name,
            "size": len(self._entries),
            "active": len(self._entries) - expired,
            "expired": expired,
            "max_size": self.max_size,
            "utilization": round(len(self._entries) / self.max_size, 4),
            "ttl_seconds": self.ttl_seconds,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "expirations": self._expirations,
            "hit_rate": round(self._hits / lookups, 4) if lookups else 0.0,
        }


class RetrievalCaches:
    """The four caches owned by a retrieval engine."""

    def __init__(
        self,
        embedding_ttl: float = 3600.0,
        embedding_max_size: int = 1000,
        chunk_ttl: float = 3600.0,
        chunk_max_size: int = 100,
        document_embedding_ttl: float = 7200.0,
        document_embedding_max_size: int = 50,
        context_ttl: float = 1800.0,
        context_max_size: int = 100,
        cleanup_probability: float = 0.1,
        clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.embeddings: TTLCache[tuple[float, ...]] = TTLCache(
            "embedding", embedding_ttl, embedding_max_size, cleanup_probability, clock, rng
        )
        self.chunks: TTLCache[tuple[DocumentChunk, ...]] = TTLCache(
            "chunk", chunk_ttl, chunk_max_size, cleanup_probability, clock, rng
        )
        self.document_embeddings: TTLCache[tuple[DocumentChunk, ...]] = TTLCache(
            "document_embedding",
            document_embedding_ttl,
            document_embedding_max_size,
            cleanup_probability,
            clock,
            rng,
        )
        self.contexts: TTLCache[SearchResult] = TTLCache(
            "context", context_ttl, context_max_size, cleanup_probability, clock, rng
        )

    def all(self) -> tuple[TTLCache[Any], ...]:
        return (self.embeddings, self.chunks, self.document_embeddings, self.contexts)

    def get_stats(self) -> dict[str, dict[str, Any]]:
        return {cache.name: cache.get_stats() for cache in self.all()}

    def clear(self) -> dict[str, int]:
        cleared = {cache.name: cache.clear() for cache in self.all()}
        logger.info("caches_cleared", extra={"cleared": cleared})
        return cleared
