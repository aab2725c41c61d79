from __future__ import annotations

import time

from fastapi import Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.responses import Response

from doc_context.app.settings import settings
from doc_context.rag.types import SearchResult

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
RETRIEVAL_COUNT = Counter(
    "context_retrievals_total",
    "Context assembly requests by strategy and query type",
    ["strategy", "query_type", "cache_hit"],
)
RETRIEVAL_CHUNKS = Histogram(
    "context_selected_chunks",
    "Number of chunks selected per context assembly",
    buckets=(0, 1, 2, 3, 5, 8, 13, 21, 34, 55),
)
RETRIEVAL_LATENCY = Histogram(
    "context_assembly_duration_seconds",
    "Time spent assembling context",
)


async def metrics_middleware(request: Request, call_next):
    if not settings.metrics_enabled:
        return await call_next(request)
    path = request.url.path
    if path == "/metrics":
        return await call_next(request)
    start = time.monotonic()
    status = 500
    try:
        response = await call_next(request)
        status = response.status_code
        return response
    finally:
        duration = time.monotonic() - start
        REQUEST_COUNT.labels(request.method, path, str(status)).inc()
        REQUEST_LATENCY.labels(request.method, path).observe(duration)


def record_retrieval(result: SearchResult) -> None:
    if not settings.metrics_enabled:
        return
    RETRIEVAL_COUNT.labels(
        result.search_strategy,
        result.query_type or "none",
        str(result.cache_hit).lower(),
    ).inc()
    RETRIEVAL_CHUNKS.observe(len(result.chunks))
    RETRIEVAL_LATENCY.observe(result.processing_time)


def metrics_response() -> Response:
    if not settings.metrics_enabled:
        return Response(status_code=404)
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
