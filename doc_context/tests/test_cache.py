from __future__ import annotations

"""TTL cache behavior tests."""

import pytest

from doc_context.rag.cache import RetrievalCaches, TTLCache, fingerprint


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache: TTLCache[str] = TTLCache("test", ttl_seconds=10, max_size=5, cleanup_probability=0.0, clock=clock)

    cache.set("a", "alpha")
    clock.now += 9
    assert cache.get("a") == "alpha"
    clock.now += 1
    assert cache.get("a") is None
    assert len(cache) == 0

    stats = cache.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["expirations"] == 1


def test_oldest_entries_are_evicted_when_full() -> None:
    clock = FakeClock()
    cache: TTLCache[int] = TTLCache("test", ttl_seconds=100, max_size=2, cleanup_probability=0.0, clock=clock)

    cache.set("first", 1)
    clock.now += 1
    cache.set("second", 2)
    clock.now += 1
    cache.set("third", 3)

    assert "first" not in cache
    assert cache.get("second") == 2
    assert cache.get("third") == 3
    assert cache.get_stats()["evictions"] == 1


def test_rewriting_a_key_refreshes_its_timestamp() -> None:
    clock = FakeClock()
    cache: TTLCache[int] = TTLCache("test", ttl_seconds=10, max_size=5, cleanup_probability=0.0, clock=clock)

    cache.set("key", 1)
    clock.now += 8
    cache.set("key", 2)
    clock.now += 8

    assert cache.get("key") == 2


def test_delete_removes_only_the_given_key() -> None:
    cache: TTLCache[int] = TTLCache("test", ttl_seconds=10, max_size=5, cleanup_probability=0.0)

    cache.set("keep", 1)
    cache.set("drop", 2)

    assert cache.delete("drop") is True
    assert cache.delete("drop") is False
    assert "drop" not in cache
    assert cache.get("keep") == 1


def test_write_sweeps_expired_entries_when_sampled() -> None:
    clock = FakeClock()
    cache: TTLCache[int] = TTLCache(
        "test", ttl_seconds=10, max_size=10, cleanup_probability=0.1, clock=clock, rng=lambda: 0.05
    )
    cache.set("old", 1)
    clock.now += 20

    cache.set("new", 2)

    assert len(cache) == 1
    assert cache.get_stats()["expirations"] == 1


def test_write_skips_sweep_when_not_sampled() -> None:
    clock = FakeClock()
    cache: TTLCache[int] = TTLCache(
        "test", ttl_seconds=10, max_size=10, cleanup_probability=0.1, clock=clock, rng=lambda: 0.5
    )
    cache.set("old", 1)
    clock.now += 20

    cache.set("new", 2)

    assert len(cache) == 2
    assert cache.get_stats()["expired"] == 1


def test_invalid_cache_limits_are_rejected() -> None:
    with pytest.raises(ValueError):
        TTLCache("test", ttl_seconds=0, max_size=1)
    with pytest.raises(ValueError):
        TTLCache("test", ttl_seconds=1, max_size=0)


def test_fingerprint_is_stable_and_separates_parts() -> None:
    assert fingerprint("query", "doc") == fingerprint("query", "doc")
    assert fingerprint("ab", "c") != fingerprint("a", "bc")
    assert len(fingerprint("x")) == 64


def test_retrieval_caches_defaults_and_clear() -> None:
    caches = RetrievalCaches()
    caches.embeddings.set("k", (0.1, 0.2))
    caches.contexts.set("k", object())  # type: ignore[arg-type]

    stats = caches.get_stats()
    assert stats["embedding"]["ttl_seconds"] == 3600
    assert stats["embedding"]["max_size"] == 1000
    assert stats["document_embedding"]["ttl_seconds"] == 7200
    assert stats["context"]["ttl_seconds"] == 1800
    assert stats["context"]["max_size"] == 100

    cleared = caches.clear()
    assert cleared == {"embedding": 1, "chunk": 0, "document_embedding": 0, "context": 1}
    assert len(caches.embeddings) == 0
