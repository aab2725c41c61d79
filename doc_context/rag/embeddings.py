from __future__ import annotations

"""Embedding providers, vector validation and similarity helpers."""

import hashlib
import math
import re
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

import httpx

_TOKEN_RE = re.compile(r"[a-z0-9]+")

DEFAULT_DIMENSION = 384


class EmbeddingError(RuntimeError):
    """Raised when embeddings fail or are invalid."""
    pass


class EmbeddingConfigError(RuntimeError):
    """Raised when embedding configuration is invalid."""
    pass


class EmbeddingProvider(Protocol):
    """Protocol for embedding providers."""
    dimension: int

    def embed(self, text: str) -> list[float]:
        """Return an embedding vector for the provided text."""
        raise NotImplementedError


def validate_vector(vector: Sequence[float], dimension: int) -> list[float]:
    """Check dimension and numeric sanity of a provider vector."""
    if len(vector) != dimension:
        raise EmbeddingError(
            f"Embedding dimension mismatch: expected {dimension}, got {len(vector)}"
        )
    cleaned: list[float] = []
    for value in vector:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise EmbeddingError("Embedding contains a non-numeric value")
        if not math.isfinite(value):
            raise EmbeddingError("Embedding contains a non-finite value")
        cleaned.append(float(value))
    return cleaned


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    """Cosine similarity; 0.0 when either vector has zero norm."""
    if len(left) != len(right):
        raise EmbeddingError(
            f"Cannot compare embeddings of length {len(left)} and {len(right)}"
        )
    dot = sum(a * b for a, b in zip(left, right))
    left_norm = math.sqrt(sum(a * a for a in left))
    right_norm = math.sqrt(sum(b * b for b in right))
    if left_norm == 0.0 or right_norm == 0.0:
        return 0.0
    return dot / (left_norm * right_norm)


@dataclass
class HashEmbedder:
    """Deterministic hash-based embedder for testing or offline use."""
    dimension: int = DEFAULT_DIMENSION

    def embed(self, text: str) -> list[float]:
        tokens = _TOKEN_RE.findall(text.lower())
        vector = [0.0] * self.dimension
        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            vector[digest[0] % self.dimension] += 1.0
        norm = math.sqrt(sum(value * value for value in vector))
        if norm:
            vector = [value / norm for value in vector]
        return validate_vector(vector, self.dimension)


@dataclass
class OpenAIEmbedder:
    """Embedding provider using the OpenAI embeddings API."""
    api_key: str
    model: str
    dimension: int
    client: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.api_key:
            raise EmbeddingConfigError("OPENAI_API_KEY is required for OpenAIEmbedder")
        if not self.model:
            raise EmbeddingConfigError("OPENAI_EMBEDDING_MODEL is required for OpenAIEmbedder")
        resolved = resolve_openai_dimension(self.model)
        if self.dimension <= 0:
            if resolved is None:
                raise EmbeddingConfigError(
                    "EMBEDDING_DIMENSION must be set for OpenAI embeddings when model is unknown"
                )
            self.dimension = resolved
        elif resolved is not None and self.dimension != resolved:
            raise EmbeddingConfigError(
                f"EMBEDDING_DIMENSION should be {resolved} for model {self.model}"
            )
        try:
            from openai import OpenAI
        except ImportError as exc:
            raise EmbeddingError("openai package is required for OpenAIEmbedder") from exc
        self.client = OpenAI(api_key=self.api_key)

    def embed(self, text: str) -> list[float]:
        response = self.client.embeddings.create(model=self.model, input=text)
        return validate_vector(list(response.data[0].embedding), self.dimension)


@dataclass
class OllamaEmbedder:
    """Embedding provider backed by a local Ollama server."""
    base_url: str
    model: str
    dimension: int
    timeout: float = 30.0

    def __post_init__(self) -> None:
        if not self.model:
            raise EmbeddingConfigError("OLLAMA_EMBEDDING_MODEL is required for OllamaEmbedder")
        if self.dimension <= 0:
            raise EmbeddingConfigError("EMBEDDING_DIMENSION must be set for Ollama embeddings")

    def embed(self, text: str) -> list[float]:
        payload = {"model": self.model, "prompt": text}
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(f"{self.base_url.rstrip('/')}/api/embeddings", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            raise EmbeddingError(str(exc)) from exc
        vector = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(vector, list):
            raise EmbeddingError("Ollama embedding response missing embedding vector")
        return validate_vector(vector, self.dimension)


def resolve_openai_dimension(model: str) -> int | None:
    """Return expected dimension for OpenAI embedding model."""
    mapping = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }
    return mapping.get(model)


@dataclass(frozen=True)
class EmbeddingConfigReport:
    """Validation report for embedding configuration."""
    provider: str
    model: str | None
    configured_dimension: int
    expected_dimension: int | None
    ok: bool
    status: str
    detail: str | None = None
    action: str | None = None


def build_embedding_config_report(
    provider: str, model: str | None, dimension: int
) -> EmbeddingConfigReport:
    """Build a validation report for embedding settings."""
    normalized = provider.lower().strip() or "hash"

    def report(
        ok: bool,
        status: str,
        expected: int | None = None,
        detail: str | None = None,
        action: str | None = None,
    ) -> EmbeddingConfigReport:
        return EmbeddingConfigReport(
            provider=normalized,
            model=model,
            configured_dimension=dimension,
            expected_dimension=expected,
            ok=ok,
            status=status,
            detail=detail,
            action=action,
        )

    if normalized == "none":
        return report(True, "disabled", detail="Semantic search is disabled; keyword scoring only.")

    if normalized == "hash":
        model = None
        if dimension <= 0:
            return report(
                False,
                "error",
                detail="EMBEDDING_DIMENSION must be greater than zero for hash embeddings.",
                action="Set EMBEDDING_DIMENSION to a positive integer.",
            )
        return report(True, "ok", expected=dimension)

    if normalized == "openai":
        if not model:
            return report(
                False,
                "error",
                detail="OPENAI_EMBEDDING_MODEL is required for OpenAI embeddings.",
                action="Set OPENAI_EMBEDDING_MODEL in .env.",
            )
        expected = resolve_openai_dimension(model)
        if expected is not None and dimension > 0 and dimension != expected:
            return report(
                False,
                "error",
                expected=expected,
                detail="EMBEDDING_DIMENSION does not match the OpenAI model dimension.",
                action=f"Set EMBEDDING_DIMENSION to {expected}.",
            )
        if expected is None and dimension <= 0:
            return report(
                False,
                "error",
                detail="EMBEDDING_DIMENSION must be set for the configured OpenAI model.",
                action="Set EMBEDDING_DIMENSION based on the OpenAI model documentation.",
            )
        if expected is None:
            return report(
                True,
                "warning",
                detail="Model dimension cannot be auto-validated. Confirm EMBEDDING_DIMENSION manually.",
            )
        return report(True, "ok", expected=expected)

    if normalized == "ollama":
        if not model:
            return report(
                False,
                "error",
                detail="OLLAMA_EMBEDDING_MODEL is required for Ollama embeddings.",
                action="Set OLLAMA_EMBEDDING_MODEL in .env.",
            )
        if dimension <= 0:
            return report(
                False,
                "error",
                detail="EMBEDDING_DIMENSION must be set for Ollama embeddings.",
                action="Set EMBEDDING_DIMENSION to the model's output size.",
            )
        return report(
            True,
            "warning",
            detail="Model dimension cannot be auto-validated. Confirm EMBEDDING_DIMENSION manually.",
        )

    return report(
        False,
        "error",
        detail="Unsupported embedding provider.",
        action="Set EMBEDDING_PROVIDER to hash, openai, ollama, or none.",
    )
