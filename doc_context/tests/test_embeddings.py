from __future__ import annotations

import time
from dataclasses import dataclass, field

import pytest

from doc_context.rag.cache import TTLCache
from doc_context.rag.embedding_service import EmbeddingService
from doc_context.rag.embeddings import (
    EmbeddingConfigError,
    EmbeddingError,
    HashEmbedder,
    OllamaEmbedder,
    build_embedding_config_report,
    validate_vector,
)
from doc_context.rag.types import EmbeddingUnavailable, EmbeddingVector

pytestmark = pytest.mark.anyio


@dataclass
class CountingEmbedder:
    dimension: int = 8
    calls: list[str] = field(default_factory=list)

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        return [1.0] + [0.0] * (self.dimension - 1)


@dataclass
class FailingEmbedder:
    dimension: int = 8
    calls: int = 0

    def embed(self, text: str) -> list[float]:
        self.calls += 1
        raise EmbeddingError("provider down")


@dataclass
class SlowEmbedder:
    dimension: int = 8

    def embed(self, text: str) -> list[float]:
        time.sleep(0.5)
        return [0.0] * self.dimension


def build_service(provider, timeout: float = 5.0) -> EmbeddingService:
    cache: TTLCache[tuple[float, ...]] = TTLCache("embedding", ttl_seconds=3600, max_size=100)
    return EmbeddingService(provider, cache, timeout=timeout)


async def test_hash_embedder_is_deterministic_and_normalized() -> None:
    embedder = HashEmbedder()
    first = embedder.embed("Irrigation schedules")
    second = embedder.embed("Irrigation schedules")

    assert first == second
    assert len(first) == 384
    assert sum(value * value for value in first) == pytest.approx(1.0)


async def test_validate_vector_rejects_bad_values() -> None:
    with pytest.raises(EmbeddingError):
        validate_vector([1.0, 2.0], 3)
    with pytest.raises(EmbeddingError):
        validate_vector([1.0, float("nan")], 2)


async def test_embedding_is_cached_by_text() -> None:
    provider = CountingEmbedder()
    service = build_service(provider)

    first = await service.embed("hello world")
    second = await service.embed("  hello world  ")

    assert isinstance(first, EmbeddingVector)
    assert first == second
    assert provider.calls == ["hello world"]


async def test_failing_provider_yields_unavailable() -> None:
    service = build_service(FailingEmbedder())

    result = await service.embed("anything")

    assert isinstance(result, EmbeddingUnavailable)
    assert result.reason.startswith("error")
    assert service.info()["provider_failures"] == 1


async def test_timeout_yields_unavailable() -> None:
    service = build_service(SlowEmbedder(), timeout=0.05)

    result = await service.embed("slow text")

    assert result == EmbeddingUnavailable("timeout")


async def test_missing_provider_and_empty_text() -> None:
    assert await build_service(None).embed("text") == EmbeddingUnavailable("no_provider")
    assert await build_service(CountingEmbedder()).embed("   ") == EmbeddingUnavailable("empty_text")


async def test_embed_many_stops_after_first_failure() -> None:
    provider = FailingEmbedder()
    service = build_service(provider)

    results = await service.embed_many(["one", "two", "three"])

    assert provider.calls == 1
    assert len(results) == 3
    assert all(isinstance(result, EmbeddingUnavailable) for result in results)


async def test_warm_up_reports_readiness() -> None:
    assert await build_service(CountingEmbedder()).warm_up() is True
    assert await build_service(FailingEmbedder()).warm_up() is False
    assert await build_service(None).warm_up() is False


async def test_config_report_covers_providers() -> None:
    assert build_embedding_config_report("hash", None, 384).ok
    assert build_embedding_config_report("none", None, 0).status == "disabled"
    mismatch = build_embedding_config_report("openai", "text-embedding-3-small", 384)
    assert not mismatch.ok
    assert mismatch.expected_dimension == 1536
    assert not build_embedding_config_report("ollama", None, 768).ok
    assert build_embedding_config_report("ollama", "nomic-embed-text", 768).status == "warning"
    assert build_embedding_config_report("mystery", None, 10).status == "error"


async def test_ollama_embedder_requires_model() -> None:
    with pytest.raises(EmbeddingConfigError):
        OllamaEmbedder(base_url="http://localhost:11434", model="", dimension=768)
