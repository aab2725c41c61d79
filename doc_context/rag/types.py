from __future__ import annotations

"""Core data types shared by the retrieval components."""

from dataclasses import dataclass, field, replace
from typing import Literal, Union

ChunkType = Literal["paragraph", "section", "table", "list"]
QueryType = Literal["overview", "chapter-reference", "technical", "specific", "general"]
SearchStrategy = Literal["semantic", "keyword", "hybrid"]


@dataclass(frozen=True)
class DocumentChunk:
    """A contiguous slice of a source document with optional scores."""
    id: str
    content: str
    start_index: int
    end_index: int
    section_title: str | None = None
    chunk_type: ChunkType = "paragraph"
    embedding: tuple[float, ...] | None = field(default=None, repr=False)
    keyword_score: float | None = None
    structural_score: float | None = None
    semantic_score: float | None = None
    combined_score: float | None = None

    @property
    def word_count(self) -> int:
        return len(self.content.split())

    def with_scores(self, **scores: float | None) -> DocumentChunk:
        """Return a copy carrying the given score fields."""
        return replace(self, **scores)

    def with_embedding(self, embedding: tuple[float, ...] | list[float] | None) -> DocumentChunk:
        """Return a copy carrying the given embedding."""
        return replace(self, embedding=tuple(embedding) if embedding is not None else None)


@dataclass(frozen=True)
class QueryAnalysis:
    type: QueryType
    confidence: float
    suggested_chunk_count: int
    suggested_threshold: float
    hybrid_weight: float
    needs_broad_context: bool


@dataclass(frozen=True)
class QualityReport:
    """Heuristic quality signals for an assembled context."""
    avg_relevance: float
    top_chunk_score: float
    coverage_score: float
    coherence_score: float
    overall: float


@dataclass(frozen=True)
class SearchResult:
    """Result of a context assembly request."""
    chunks: tuple[DocumentChunk, ...]
    total_relevance: float
    search_strategy: SearchStrategy
    processing_time: float
    context: str
    query_type: QueryType | None = None
    confidence: float | None = None
    quality: QualityReport | None = None
    cache_hit: bool = False


@dataclass(frozen=True)
class EmbeddingVector:
    """An embedding produced by a provider."""
    values: tuple[float, ...]

    @property
    def dimension(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class EmbeddingUnavailable:
    """No semantic signal is available for a text."""
    reason: str


Embedding = Union[EmbeddingVector, EmbeddingUnavailable]
