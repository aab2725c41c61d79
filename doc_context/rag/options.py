from __future__ import annotations

"""Per-request retrieval options."""

from dataclasses import asdict, dataclass


class RetrievalConfigError(RuntimeError):
    """Raised when retrieval options are invalid."""
    pass


@dataclass(frozen=True)
class RetrievalOptions:
    """Options for a single context assembly request.

    ``min_relevance_score``, ``hybrid_weight`` and ``max_chunks`` default to
    ``None``, in which case the query classifier's suggestion is used.
    ``include_neighbours`` adds the chunks adjacent to each selected chunk
    while the token budget allows.
    """
    max_tokens: int = 4000
    chunk_size: int = 1000
    overlap: int = 200
    min_relevance_score: float | None = None
    use_semantic_search: bool = True
    hybrid_weight: float | None = None
    max_chunks: int | None = None
    generate_embeddings: bool = True
    validate_quality: bool = True
    include_neighbours: bool = False

    def __post_init__(self) -> None:
        if self.max_tokens <= 0:
            raise RetrievalConfigError("max_tokens must be greater than zero")
        if self.chunk_size <= 0:
            raise RetrievalConfigError("chunk_size must be greater than zero")
        if self.overlap < 0:
            raise RetrievalConfigError("overlap must not be negative")
        if self.overlap >= self.chunk_size:
            raise RetrievalConfigError("overlap must be smaller than chunk_size")
        if self.min_relevance_score is not None and self.min_relevance_score < 0:
            raise RetrievalConfigError("min_relevance_score must not be negative")
        if self.hybrid_weight is not None and not 0.0 <= self.hybrid_weight <= 1.0:
            raise RetrievalConfigError("hybrid_weight must be between 0 and 1")
        if self.max_chunks is not None and self.max_chunks <= 0:
            raise RetrievalConfigError("max_chunks must be greater than zero")

    def cache_key(self) -> str:
        """Return a stable string describing every option value."""
        return "|".join(f"{name}={value}" for name, value in sorted(asdict(self).items()))
