from __future__ import annotations

"""FastAPI application exposing document context retrieval."""

import dataclasses
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, HTTPException, Request

from doc_context.app.dependencies import get_embedding_config_report, get_engine
from doc_context.app.metrics import metrics_middleware, metrics_response, record_retrieval
from doc_context.app.schemas import (
    CacheFlushResponse,
    CacheStatsResponse,
    ContextChunkOut,
    ContextRequest,
    ContextResponse,
    EmbeddingHealthResponse,
    QualityOut,
)
from doc_context.app.settings import settings
from doc_context.rag.options import RetrievalConfigError, RetrievalOptions
from doc_context.rag.tokens import estimate_tokens

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Configure root logging using environment settings."""
    level_name = settings.log_level.strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


_configure_logging()


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    engine = get_engine()
    await engine.start(warm_up=settings.embedding_warm_up)
    try:
        yield
    finally:
        await engine.shutdown()


app = FastAPI(title="Document Context Retrieval", version="0.1.0", lifespan=lifespan)


def _resolve_options(request: ContextRequest, base: RetrievalOptions) -> RetrievalOptions:
    if request.options is None:
        return base
    overrides = request.options.model_dump(exclude_none=True)
    try:
        return dataclasses.replace(base, **overrides)
    except RetrievalConfigError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Attach or create a request ID for traceability."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    return await metrics_middleware(request, call_next)


@app.get("/metrics")
async def metrics():
    """Expose Prometheus-style metrics."""
    return metrics_response()


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/context", response_model=ContextResponse)
async def assemble_context(payload: ContextRequest, http_request: Request) -> ContextResponse:
    """Assemble token-budgeted context for a query over the supplied document."""
    request_id = getattr(http_request.state, "request_id", str(uuid.uuid4()))
    engine = get_engine()
    options = _resolve_options(payload, engine.default_options)
    result = await engine.assemble(payload.query, payload.document, options)
    record_retrieval(result)
    logger.info(
        "context_request",
        extra={
            "request_id": request_id,
            "query_type": result.query_type,
            "strategy": result.search_strategy,
            "cache_hit": result.cache_hit,
        },
    )
    return ContextResponse(
        context=result.context,
        chunks=[
            ContextChunkOut(
                id=chunk.id,
                content=chunk.content,
                start_index=chunk.start_index,
                end_index=chunk.end_index,
                section_title=chunk.section_title,
                chunk_type=chunk.chunk_type,
                keyword_score=chunk.keyword_score,
                structural_score=chunk.structural_score,
                semantic_score=chunk.semantic_score,
                combined_score=chunk.combined_score,
            )
            for chunk in result.chunks
        ],
        total_relevance=result.total_relevance,
        search_strategy=result.search_strategy,
        processing_time=result.processing_time,
        estimated_tokens=sum(estimate_tokens(chunk.content) for chunk in result.chunks),
        query_type=result.query_type,
        confidence=result.confidence,
        quality=QualityOut(**dataclasses.asdict(result.quality)) if result.quality else None,
        cache_hit=result.cache_hit,
        title=payload.title,
        request_id=request_id,
    )


@app.get("/stats/cache", response_model=CacheStatsResponse)
async def cache_stats() -> CacheStatsResponse:
    """Return cache and background queue statistics."""
    return CacheStatsResponse(**get_engine().get_stats())


@app.post("/cache/flush", response_model=CacheFlushResponse)
async def flush_cache() -> CacheFlushResponse:
    return CacheFlushResponse(cleared=get_engine().flush())


@app.get("/stats/embedding", response_model=EmbeddingHealthResponse)
async def embedding_health() -> EmbeddingHealthResponse:
    """Return embedding configuration checks and adapter statistics."""
    report = get_embedding_config_report()
    return EmbeddingHealthResponse(**report.__dict__, service=get_engine().embeddings.info())
