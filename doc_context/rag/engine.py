from __future__ import annotations

"""Retrieval engine: owns the caches, the embedding adapter and the background queue."""

import logging
import time
from dataclasses import replace
from typing import Any, Sequence

from doc_context.rag.assembler import (
    SelectionPlan,
    add_neighbours,
    evaluate_quality,
    format_context,
    in_document_order,
    needs_retry,
    plan_selection,
    relax_plan,
    select_chunks,
    total_relevance,
)
from doc_context.rag.cache import RetrievalCaches, fingerprint
from doc_context.rag.chunking import chunk_document
from doc_context.rag.classifier import classify_query, expand_query, extract_topics
from doc_context.rag.embedding_service import EmbeddingService
from doc_context.rag.embeddings import EmbeddingProvider
from doc_context.rag.options import RetrievalOptions
from doc_context.rag.precompute import EmbeddingPrecomputeQueue
from doc_context.rag.scoring import keyword_score, rank_chunks, score_chunks
from doc_context.rag.tokens import chars_for_tokens, estimate_tokens
from doc_context.rag.types import DocumentChunk, EmbeddingVector, QueryAnalysis, SearchResult

logger = logging.getLogger(__name__)

FULL_DOCUMENT_ID = "full_document"
EMERGENCY_ID = "emergency_context"
KEYWORD_FALLBACK_CHUNKS = 10
RETRY_TOPICS = 10


class RetrievalEngine:
    """Assembles token-budgeted context for a query over a single document.

    One engine is meant to live for the whole process. ``start`` launches the
    background embedding worker and must be awaited from a running event loop;
    ``shutdown`` stops it.
    """

    def __init__(
        self,
        provider: EmbeddingProvider | None = None,
        *,
        caches: RetrievalCaches | None = None,
        provider_name: str = "hash",
        embedding_timeout: float = 5.0,
        full_document_max_chars: int = 8000,
        emergency_context_chars: int = 8000,
        semantic_candidates: int = 40,
        queue_maxsize: int = 32,
        queue_batch_size: int = 4,
        queue_batch_delay: float = 0.1,
        default_options: RetrievalOptions | None = None,
    ) -> None:
        self.caches = caches or RetrievalCaches()
        self.embeddings = EmbeddingService(
            provider, self.caches.embeddings, timeout=embedding_timeout, provider_name=provider_name
        )
        self.queue = EmbeddingPrecomputeQueue(
            self.embeddings,
            self.caches.document_embeddings,
            maxsize=queue_maxsize,
            batch_size=queue_batch_size,
            batch_delay=queue_batch_delay,
        )
        self.full_document_max_chars = full_document_max_chars
        self.emergency_context_chars = emergency_context_chars
        self.semantic_candidates = semantic_candidates
        self.default_options = default_options or RetrievalOptions()

    async def start(self, warm_up: bool = True) -> None:
        self.queue.start()
        if warm_up:
            await self.embeddings.warm_up()

    async def shutdown(self) -> None:
        await self.queue.stop()

    def flush(self) -> dict[str, int]:
        """Clear every cache owned by the engine."""
        return self.caches.clear()

    def get_stats(self) -> dict[str, Any]:
        return {
            "caches": self.caches.get_stats(),
            "queue": self.queue.get_stats(),
        }

    async def assemble(
        self,
        query: str,
        document_text: str,
        options: RetrievalOptions | None = None,
    ) -> SearchResult:
        """Return the most relevant context for ``query`` within the token budget.

        Never raises: failures degrade to a keyword-only pass and, as a last
        resort, to a prefix of the raw document.
        """
        options = options or self.default_options
        started = time.perf_counter()
        try:
            if not document_text.strip():
                return SearchResult(
                    chunks=(),
                    total_relevance=0.0,
                    search_strategy="keyword",
                    processing_time=_elapsed(started),
                    context="",
                )
            if self._fits_whole(document_text, options):
                return self._full_document_result(document_text, started)

            document_key = fingerprint(document_text)
            context_key = fingerprint(query, document_key, options.cache_key())
            cached = self.caches.contexts.get(context_key)
            if cached is not None:
                logger.info("context_cache_hit", extra={"document": document_key[:12]})
                return replace(cached, processing_time=_elapsed(started), cache_hit=True)

            result = await self._retrieve(query, document_text, document_key, options, started)
            self.caches.contexts.set(context_key, result)
            logger.info(
                "retrieval_complete",
                extra={
                    "query_type": result.query_type,
                    "confidence": result.confidence,
                    "strategy": result.search_strategy,
                    "selected": len(result.chunks),
                    "relevance": result.total_relevance,
                    "elapsed": result.processing_time,
                },
            )
            return result
        except Exception:
            logger.exception("context_assembly_failed")
            return self._emergency_result(document_text, options, started)

    def _fits_whole(self, document_text: str, options: RetrievalOptions) -> bool:
        return (
            len(document_text) <= self.full_document_max_chars
            and estimate_tokens(document_text) <= options.max_tokens
        )

    def _full_document_result(self, document_text: str, started: float) -> SearchResult:
        chunk = DocumentChunk(
            id=FULL_DOCUMENT_ID,
            content=document_text,
            start_index=0,
            end_index=len(document_text),
            chunk_type="section",
            combined_score=1.0,
        )
        return SearchResult(
            chunks=(chunk,),
            total_relevance=1.0,
            search_strategy="keyword",
            processing_time=_elapsed(started),
            context=document_text,
        )

    def _emergency_result(
        self, document_text: str, options: RetrievalOptions, started: float
    ) -> SearchResult:
        limit = min(self.emergency_context_chars, chars_for_tokens(options.max_tokens))
        prefix = document_text[:limit]
        chunks: tuple[DocumentChunk, ...] = ()
        if prefix.strip():
            chunks = (
                DocumentChunk(
                    id=EMERGENCY_ID,
                    content=prefix,
                    start_index=0,
                    end_index=len(prefix),
                    combined_score=0.5,
                ),
            )
        return SearchResult(
            chunks=chunks,
            total_relevance=0.5 if chunks else 0.0,
            search_strategy="keyword",
            processing_time=_elapsed(started),
            context=prefix,
        )

    def _load_chunks(self, document_text: str, chunk_key: str, options: RetrievalOptions) -> list[DocumentChunk]:
        embedded = self.caches.document_embeddings.get(chunk_key)
        if embedded is not None:
            # Embedded chunks supersede the plain ones.
            self.caches.chunks.delete(chunk_key)
            return list(embedded)
        cached = self.caches.chunks.get(chunk_key)
        if cached is not None:
            return list(cached)
        chunks = chunk_document(document_text, options.chunk_size, options.overlap)
        self.caches.chunks.set(chunk_key, tuple(chunks))
        return chunks

    async def _prepare_semantic(
        self,
        query: str,
        chunks: list[DocumentChunk],
        chunk_key: str,
        options: RetrievalOptions,
        hybrid_weight: float,
        expanded_query: str,
    ) -> tuple[tuple[float, ...] | None, list[DocumentChunk]]:
        if not options.use_semantic_search or not self.embeddings.available:
            return None, chunks
        query_embedding = await self.embeddings.embed(query)
        if not isinstance(query_embedding, EmbeddingVector):
            return None, chunks
        if all(chunk.embedding is not None for chunk in chunks):
            return query_embedding.values, chunks
        if not options.generate_embeddings:
            return query_embedding.values, chunks

        self.queue.enqueue(chunk_key, chunks)
        # Request path embeds only the strongest lexical candidates.
        lexical = score_chunks(query, chunks, hybrid_weight, expanded_query)
        candidates = rank_chunks(lexical.chunks)[: self.semantic_candidates]
        vectors = await self.embeddings.embed_many([chunk.content for chunk in candidates])
        by_id = {
            chunk.id: result.values
            for chunk, result in zip(candidates, vectors)
            if isinstance(result, EmbeddingVector)
        }
        return query_embedding.values, [
            chunk.with_embedding(by_id[chunk.id]) if chunk.id in by_id else chunk for chunk in chunks
        ]

    async def _retrieve(
        self,
        query: str,
        document_text: str,
        document_key: str,
        options: RetrievalOptions,
        started: float,
    ) -> SearchResult:
        chunk_key = fingerprint(document_key, str(options.chunk_size), str(options.overlap))
        chunks = self._load_chunks(document_text, chunk_key, options)
        analysis = classify_query(query, len(chunks))
        hybrid_weight = analysis.hybrid_weight if options.hybrid_weight is None else options.hybrid_weight
        plan = plan_selection(analysis, options.max_tokens, options.min_relevance_score, options.max_chunks)
        expanded = expand_query(query, analysis, document_text)

        try:
            query_vector, scoring_chunks = await self._prepare_semantic(
                query, chunks, chunk_key, options, hybrid_weight, expanded
            )
            outcome = score_chunks(query, scoring_chunks, hybrid_weight, expanded, query_vector)
        except Exception:
            logger.warning("scoring_failed", extra={"query_type": analysis.type}, exc_info=True)
            return self._keyword_fallback(query, chunks, options, analysis, started)

        selected = select_chunks(rank_chunks(outcome.chunks), plan)
        strategy = outcome.strategy
        scored = outcome.chunks
        quality = None
        if options.validate_quality:
            quality = evaluate_quality(query, selected)
            if needs_retry(quality):
                retry_query = expanded
                if retry_query == query:
                    retry_query = " ".join([query, *extract_topics(document_text, RETRY_TOPICS)])
                retry = score_chunks(query, scoring_chunks, hybrid_weight, retry_query, query_vector)
                relaxed = relax_plan(plan, keep_count=options.max_chunks is not None)
                retry_selected = select_chunks(rank_chunks(retry.chunks), relaxed)
                retry_quality = evaluate_quality(query, retry_selected)
                logger.info(
                    "quality_retry",
                    extra={"before": quality.overall, "after": retry_quality.overall},
                )
                if retry_quality.overall > quality.overall:
                    selected, quality, strategy = retry_selected, retry_quality, retry.strategy
                    scored = retry.chunks

        if options.include_neighbours and selected:
            selected = add_neighbours(selected, scored, options.max_tokens, options.max_chunks)

        ordered = [chunk.with_embedding(None) for chunk in in_document_order(selected)]
        return SearchResult(
            chunks=tuple(ordered),
            total_relevance=total_relevance(ordered),
            search_strategy=strategy,
            processing_time=_elapsed(started),
            context=format_context(ordered),
            query_type=analysis.type,
            confidence=analysis.confidence,
            quality=quality,
        )

    def _keyword_fallback(
        self,
        query: str,
        chunks: Sequence[DocumentChunk],
        options: RetrievalOptions,
        analysis: QueryAnalysis,
        started: float,
    ) -> SearchResult:
        head = chunks[:KEYWORD_FALLBACK_CHUNKS]
        scored = []
        for chunk in head:
            score = keyword_score(query, chunk.content)
            scored.append(chunk.with_scores(keyword_score=score, combined_score=score))
        plan = SelectionPlan(threshold=0.0, max_chunks=len(scored), max_tokens=options.max_tokens)
        selected = in_document_order(select_chunks(rank_chunks(scored), plan))
        ordered = [chunk.with_embedding(None) for chunk in selected]
        return SearchResult(
            chunks=tuple(ordered),
            total_relevance=total_relevance(ordered),
            search_strategy="keyword",
            processing_time=_elapsed(started),
            context=format_context(ordered),
            query_type=analysis.type,
            confidence=analysis.confidence,
        )


def _elapsed(started: float) -> float:
    return round(time.perf_counter() - started, 6)
