from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    max_tokens: int = int(os.getenv("CTX_MAX_TOKENS", "4000"))
    chunk_size: int = int(os.getenv("CTX_CHUNK_SIZE", "1000"))
    chunk_overlap: int = int(os.getenv("CTX_CHUNK_OVERLAP", "200"))
    use_semantic_search: bool = _flag("CTX_USE_SEMANTIC_SEARCH", "true")
    generate_embeddings: bool = _flag("CTX_GENERATE_EMBEDDINGS", "true")
    validate_quality: bool = _flag("CTX_VALIDATE_QUALITY", "true")
    include_neighbours: bool = _flag("CTX_INCLUDE_NEIGHBOURS", "false")
    full_document_max_chars: int = int(os.getenv("CTX_FULL_DOCUMENT_MAX_CHARS", "8000"))
    emergency_context_chars: int = int(os.getenv("CTX_EMERGENCY_CONTEXT_CHARS", "8000"))
    semantic_candidates: int = int(os.getenv("CTX_SEMANTIC_CANDIDATES", "40"))
    embedding_cache_ttl: float = float(os.getenv("CTX_EMBEDDING_CACHE_TTL", "3600"))
    embedding_cache_size: int = int(os.getenv("CTX_EMBEDDING_CACHE_SIZE", "1000"))
    chunk_cache_ttl: float = float(os.getenv("CTX_CHUNK_CACHE_TTL", "3600"))
    chunk_cache_size: int = int(os.getenv("CTX_CHUNK_CACHE_SIZE", "100"))
    document_embedding_cache_ttl: float = float(os.getenv("CTX_DOCUMENT_EMBEDDING_CACHE_TTL", "7200"))
    document_embedding_cache_size: int = int(os.getenv("CTX_DOCUMENT_EMBEDDING_CACHE_SIZE", "50"))
    context_cache_ttl: float = float(os.getenv("CTX_CONTEXT_CACHE_TTL", "1800"))
    context_cache_size: int = int(os.getenv("CTX_CONTEXT_CACHE_SIZE", "100"))
    cache_cleanup_probability: float = float(os.getenv("CTX_CACHE_CLEANUP_PROBABILITY", "0.1"))
    queue_maxsize: int = int(os.getenv("CTX_QUEUE_MAXSIZE", "32"))
    queue_batch_size: int = int(os.getenv("CTX_QUEUE_BATCH_SIZE", "4"))
    queue_batch_delay: float = float(os.getenv("CTX_QUEUE_BATCH_DELAY", "0.1"))
    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "hash")
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "384"))
    embedding_timeout: float = float(os.getenv("EMBEDDING_TIMEOUT", "5"))
    embedding_warm_up: bool = _flag("EMBEDDING_WARM_UP", "true")
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_embedding_model: str | None = os.getenv("OPENAI_EMBEDDING_MODEL")
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    ollama_embedding_model: str | None = os.getenv("OLLAMA_EMBEDDING_MODEL")
    ollama_timeout: float = float(os.getenv("OLLAMA_TIMEOUT", "30"))
    metrics_enabled: bool = _flag("RAG_METRICS_ENABLED", "true")

    @property
    def embedding_model(self) -> str | None:
        provider = self.embedding_provider.lower().strip()
        if provider == "openai":
            return self.openai_embedding_model
        if provider == "ollama":
            return self.ollama_embedding_model
        return None


settings = Settings()
