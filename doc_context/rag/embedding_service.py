from __future__ import annotations

"""Embedding provider adapter with caching, timeouts and graceful degradation."""

import asyncio
import logging
from typing import Any, Sequence

from doc_context.rag.cache import TTLCache, fingerprint
from doc_context.rag.embeddings import EmbeddingProvider, validate_vector
from doc_context.rag.types import Embedding, EmbeddingUnavailable, EmbeddingVector

logger = logging.getLogger(__name__)

WARM_UP_TEXT = "Document context retrieval warm-up."


class EmbeddingService:
    """Wraps an embedding provider so that callers never see provider errors.

    Every failure mode (no provider, empty text, timeout, provider error)
    yields :class:`EmbeddingUnavailable`, which callers treat as "no semantic
    signal" rather than as a zero similarity.
    """

    def __init__(
        self,
        provider: EmbeddingProvider | None,
        cache: TTLCache[tuple[float, ...]],
        timeout: float = 5.0,
        provider_name: str = "hash",
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.timeout = timeout
        self.provider_name = provider_name if provider is not None else "none"
        self._failures = 0
        self._calls = 0

    @property
    def available(self) -> bool:
        return self.provider is not None

    @property
    def dimension(self) -> int | None:
        return self.provider.dimension if self.provider is not None else None

    async def embed(self, text: str) -> Embedding:
        if self.provider is None:
            return EmbeddingUnavailable("no_provider")
        cleaned = text.strip()
        if not cleaned:
            return EmbeddingUnavailable("empty_text")
        key = fingerprint(cleaned)
        cached = self.cache.get(key)
        if cached is not None:
            return EmbeddingVector(cached)

        provider = self.provider
        self._calls += 1
        try:
            vector = await asyncio.wait_for(
                asyncio.to_thread(provider.embed, cleaned), timeout=self.timeout
            )
            values = tuple(validate_vector(vector, provider.dimension))
        except asyncio.TimeoutError:
            self._failures += 1
            logger.warning(
                "embedding_unavailable",
                extra={"reason": "timeout", "provider": self.provider_name, "timeout": self.timeout},
            )
            return EmbeddingUnavailable("timeout")
        except Exception as exc:
            self._failures += 1
            logger.warning(
                "embedding_unavailable",
                extra={"reason": type(exc).__name__, "provider": self.provider_name},
            )
            return EmbeddingUnavailable(f"error:{type(exc).__name__}")
        self.cache.set(key, values)
        return EmbeddingVector(values)

    async def embed_many(self, texts: Sequence[str]) -> list[Embedding]:
        """Embed texts in order, giving up on the remainder after the first failure."""
        results: list[Embedding] = []
        for index, text in enumerate(texts):
            embedding = await self.embed(text)
            results.append(embedding)
            if isinstance(embedding, EmbeddingUnavailable) and embedding.reason != "empty_text":
                skipped = EmbeddingUnavailable(f"skipped:{embedding.reason}")
                results.extend(skipped for _ in texts[index + 1 :])
                break
        return results

    async def warm_up(self) -> bool:
        """Embed a sample text so the first real request does not pay setup costs."""
        if self.provider is None:
            return False
        embedding = await self.embed(WARM_UP_TEXT)
        ready = isinstance(embedding, EmbeddingVector)
        logger.info("embedding_warm_up", extra={"provider": self.provider_name, "ready": ready})
        return ready

    def info(self) -> dict[str, Any]:
        return {
            "provider": self.provider_name,
            "available": self.available,
            "dimension": self.dimension,
            "timeout": self.timeout,
            "provider_calls": self._calls,
            "provider_failures": self._failures,
            "cache": self.cache.get_stats(),
        }
