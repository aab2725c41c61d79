from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ContextOptions(BaseModel):
    max_tokens: int | None = Field(default=None, ge=1)
    chunk_size: int | None = Field(default=None, ge=1)
    overlap: int | None = Field(default=None, ge=0)
    min_relevance_score: float | None = Field(default=None, ge=0.0)
    use_semantic_search: bool | None = None
    hybrid_weight: float | None = Field(default=None, ge=0.0, le=1.0)
    max_chunks: int | None = Field(default=None, ge=1)
    generate_embeddings: bool | None = None
    validate_quality: bool | None = None
    include_neighbours: bool | None = None


class ContextRequest(BaseModel):
    query: str = Field(min_length=1)
    document: str
    title: str | None = None
    options: ContextOptions | None = None


class ContextChunkOut(BaseModel):
    id: str
    content: str
    start_index: int
    end_index: int
    section_title: str | None = None
    chunk_type: str
    keyword_score: float | None = None
    structural_score: float | None = None
    semantic_score: float | None = None
    combined_score: float | None = None


class QualityOut(BaseModel):
    avg_relevance: float
    top_chunk_score: float
    coverage_score: float
    coherence_score: float
    overall: float


class ContextResponse(BaseModel):
    context: str
    chunks: list[ContextChunkOut]
    total_relevance: float
    search_strategy: str
    processing_time: float
    estimated_tokens: int
    query_type: str | None = None
    confidence: float | None = None
    quality: QualityOut | None = None
    cache_hit: bool = False
    title: str | None = None
    request_id: str


class CacheStatsResponse(BaseModel):
    caches: dict[str, dict[str, Any]]
    queue: dict[str, Any]


class CacheFlushResponse(BaseModel):
    cleared: dict[str, int]


class EmbeddingHealthResponse(BaseModel):
    provider: str
    model: str | None
    configured_dimension: int
    expected_dimension: int | None = None
    ok: bool
    status: str
    detail: str | None = None
    action: str | None = None
    service: dict[str, Any] = Field(default_factory=dict)
