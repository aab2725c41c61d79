from __future__ import annotations

from functools import lru_cache

from doc_context.app.settings import Settings, settings
from doc_context.rag.cache import RetrievalCaches
from doc_context.rag.embeddings import (
    EmbeddingConfigError,
    EmbeddingConfigReport,
    EmbeddingProvider,
    HashEmbedder,
    OllamaEmbedder,
    OpenAIEmbedder,
    build_embedding_config_report,
)
from doc_context.rag.engine import RetrievalEngine
from doc_context.rag.options import RetrievalOptions


def build_embedder(config: Settings = settings) -> EmbeddingProvider | None:
    """Create the configured embedding provider, or None when disabled."""
    provider = config.embedding_provider.lower().strip()
    if provider == "none":
        return None
    if provider in {"", "hash"}:
        return HashEmbedder(dimension=config.embedding_dimension)
    if provider == "openai":
        return OpenAIEmbedder(
            api_key=config.openai_api_key or "",
            model=config.openai_embedding_model or "",
            dimension=config.embedding_dimension,
        )
    if provider == "ollama":
        return OllamaEmbedder(
            base_url=config.ollama_base_url,
            model=config.ollama_embedding_model or "",
            dimension=config.embedding_dimension,
            timeout=config.ollama_timeout,
        )
    raise EmbeddingConfigError(f"Unsupported embedding provider: {config.embedding_provider}")


def default_options(config: Settings = settings) -> RetrievalOptions:
    return RetrievalOptions(
        max_tokens=config.max_tokens,
        chunk_size=config.chunk_size,
        overlap=config.chunk_overlap,
        use_semantic_search=config.use_semantic_search,
        generate_embeddings=config.generate_embeddings,
        validate_quality=config.validate_quality,
        include_neighbours=config.include_neighbours,
    )


def build_engine(config: Settings = settings) -> RetrievalEngine:
    caches = RetrievalCaches(
        embedding_ttl=config.embedding_cache_ttl,
        embedding_max_size=config.embedding_cache_size,
        chunk_ttl=config.chunk_cache_ttl,
        chunk_max_size=config.chunk_cache_size,
        document_embedding_ttl=config.document_embedding_cache_ttl,
        document_embedding_max_size=config.document_embedding_cache_size,
        context_ttl=config.context_cache_ttl,
        context_max_size=config.context_cache_size,
        cleanup_probability=config.cache_cleanup_probability,
    )
    return RetrievalEngine(
        build_embedder(config),
        caches=caches,
        provider_name=config.embedding_provider.lower().strip() or "hash",
        embedding_timeout=config.embedding_timeout,
        full_document_max_chars=config.full_document_max_chars,
        emergency_context_chars=config.emergency_context_chars,
        semantic_candidates=config.semantic_candidates,
        queue_maxsize=config.queue_maxsize,
        queue_batch_size=config.queue_batch_size,
        queue_batch_delay=config.queue_batch_delay,
        default_options=default_options(config),
    )


@lru_cache
def get_engine() -> RetrievalEngine:
    return build_engine()


def reset_engine_cache() -> None:
    get_engine.cache_clear()


def get_embedding_config_report() -> EmbeddingConfigReport:
    return build_embedding_config_report(
        settings.embedding_provider,
        settings.embedding_model,
        settings.embedding_dimension,
    )
