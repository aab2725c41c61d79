from __future__ import annotations

"""Keyword, structural and semantic relevance scoring."""

import logging
import math
import re
from dataclasses import dataclass
from typing import Sequence

from doc_context.rag.embeddings import cosine_similarity
from doc_context.rag.types import DocumentChunk, SearchStrategy

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
        "with", "by", "is", "are", "was", "were", "be", "been", "have", "has", "had",
        "do", "does", "did", "will", "would", "could", "should", "may", "might", "can",
        "what", "when", "where", "why", "how", "which", "who", "whom",
    }
)

PHRASE_BONUS = 10.0
NUMBERED_ITEM_BONUS = 15.0
FORMAL_ELEMENT_BONUS = 15.0
FORMAL_EXACT_BONUS = 25.0
DIVISION_BONUS = 10.0
DIVISION_EXACT_BONUS = 30.0
TITLE_OVERLAP_BONUS = 20.0
WELL_SIZED_BONUS = 5.0
MAX_FORMAL_ELEMENTS = 5

_KEYWORD_RE = re.compile(r"[a-z0-9]+(?:['-][a-z0-9]+)*")
_NUMBERED_ITEM_RES = (
    re.compile(r"\b(\d+)(?:st|nd|rd|th)?\s+(?:point|item|step|section)\b", re.IGNORECASE),
    re.compile(r"\b(?:point|item|step)\s+(?:number\s+)?(\d+)\b", re.IGNORECASE),
)
_FORMAL_KINDS = {
    "example": "example",
    "figure": "figure",
    "fig.": "figure",
    "fig": "figure",
    "table": "table",
    "diagram": "diagram",
    "equation": "equation",
    "exercise": "exercise",
}
_FORMAL_QUERY_RE = re.compile(
    r"\b(examples?|figures?|fig\.?|tables?|diagrams?|equations?|exercises?)(?:\s+(\d+(?:\.\d+)*))?",
    re.IGNORECASE,
)
_FORMAL_CHUNK_RE = re.compile(
    r"\b(Example|Figure|Fig\.|Table|Diagram|Equation|Exercise)\s+(\d+(?:\.\d+)*)\b"
)
_DIVISION_RE = re.compile(
    r"\b(chapter|section|part|unit|lesson|module)\s+(\d+(?:\.\d+)*)\b", re.IGNORECASE
)


def extract_keywords(query: str) -> list[str]:
    """Lowercase query tokens without stop-words or tokens of two characters or fewer."""
    keywords: list[str] = []
    for token in _KEYWORD_RE.findall(query.lower()):
        if len(token) <= 2 or token in STOP_WORDS or token in keywords:
            continue
        keywords.append(token)
    return keywords


def _normalize_phrase(query: str) -> str:
    return re.sub(r"\s+", " ", query.strip().lower()).rstrip("?.!")


def _formal_kind(raw: str) -> str:
    kind = raw.lower()
    if kind.endswith("s") and kind[:-1] in _FORMAL_KINDS:
        kind = kind[:-1]
    return _FORMAL_KINDS.get(kind, kind)


def _length_norm(content_lower: str, phrase: str | None) -> float:
    if phrase:
        content_lower = content_lower.replace(phrase, " ")
    length = sum(1 for char in content_lower if not char.isspace())
    return max(math.log(length + 1), math.log(2))


def keyword_score(query: str, content: str, expanded_query: str | None = None) -> float:
    """Score lexical overlap, normalized by the log of the content length.

    The length excludes whitespace and occurrences of the query phrase, so
    adding the phrase to a chunk never lowers its score.
    """
    if not content:
        return 0.0
    content_lower = content.lower()
    score = 0.0

    phrase = _normalize_phrase(query)
    matched_phrase = None
    if len(phrase) > 2 and phrase in content_lower:
        score += PHRASE_BONUS
        matched_phrase = phrase

    for keyword in extract_keywords(expanded_query or query):
        occurrences = content_lower.count(keyword)
        if occurrences:
            score += 1.0 + 0.5 * min(occurrences - 1, 3)

    for pattern in _NUMBERED_ITEM_RES:
        match = pattern.search(query)
        if not match:
            continue
        number = re.escape(match.group(1))
        item_patterns = (
            re.compile(rf"^\s*{number}\.\s", re.MULTILINE),
            re.compile(rf"^\s*{number}\)\s", re.MULTILINE),
            re.compile(rf"\b{number}\b[^\n]*:"),
        )
        score += NUMBERED_ITEM_BONUS * sum(1 for item in item_patterns if item.search(content))
        break

    return score / _length_norm(content_lower, matched_phrase)


def structural_score(query: str, chunk: DocumentChunk) -> float:
    """Score references to numbered elements, divisions and section titles."""
    score = 0.0
    title = chunk.section_title or ""
    haystack = f"{title}\n{chunk.content}"

    formal_refs = [
        (_formal_kind(kind), number) for kind, number in _FORMAL_QUERY_RE.findall(query)
    ]
    if formal_refs:
        elements = {(_formal_kind(kind), number) for kind, number in _FORMAL_CHUNK_RE.findall(haystack)}
        score += FORMAL_ELEMENT_BONUS * min(len(elements), MAX_FORMAL_ELEMENTS)
        for ref in formal_refs:
            if ref[1] and ref in elements:
                score += FORMAL_EXACT_BONUS

    division_refs = [(kind.lower(), number) for kind, number in _DIVISION_RE.findall(query)]
    if division_refs:
        divisions = {(kind.lower(), number) for kind, number in _DIVISION_RE.findall(haystack)}
        kinds = {kind for kind, _ in divisions}
        for ref in division_refs:
            if ref[0] in kinds:
                score += DIVISION_BONUS
            if ref in divisions:
                score += DIVISION_EXACT_BONUS

    if title:
        title_tokens = set(_KEYWORD_RE.findall(title.lower()))
        if title_tokens.intersection(extract_keywords(query)):
            score += TITLE_OVERLAP_BONUS

    # Size alone never makes a chunk structurally relevant.
    if score > 0 and 100 <= chunk.word_count <= 2000:
        score += WELL_SIZED_BONUS
    return score


def base_score(keyword: float, structural: float) -> float:
    return max(keyword, structural) + 0.5 * min(keyword, structural)


def combine_scores(base: float, semantic: float, hybrid_weight: float) -> float:
    return semantic * hybrid_weight * 0.4 + base * (1 - hybrid_weight) * 0.6


@dataclass(frozen=True)
class ScoringOutcome:
    chunks: list[DocumentChunk]
    strategy: SearchStrategy


def score_chunks(
    query: str,
    chunks: Sequence[DocumentChunk],
    hybrid_weight: float,
    expanded_query: str | None = None,
    query_embedding: Sequence[float] | None = None,
) -> ScoringOutcome:
    """Attach keyword, structural, semantic and combined scores to chunks.

    Semantic scores are computed only for chunks that carry an embedding and
    only when ``query_embedding`` is given. When no chunk ends up with a
    positive semantic score the combined score is the base score and the
    strategy is ``keyword``.
    """
    partial: list[tuple[DocumentChunk, float, float, float]] = []
    for chunk in chunks:
        keyword = keyword_score(query, chunk.content, expanded_query)
        structural = structural_score(query, chunk)
        semantic = 0.0
        if query_embedding is not None and chunk.embedding is not None:
            semantic = max(0.0, cosine_similarity(query_embedding, chunk.embedding))
        partial.append((chunk, keyword, structural, semantic))

    hybrid = any(semantic > 0 for _, _, _, semantic in partial)
    scored: list[DocumentChunk] = []
    for chunk, keyword, structural, semantic in partial:
        base = base_score(keyword, structural)
        combined = combine_scores(base, semantic, hybrid_weight) if hybrid else base
        scored.append(
            chunk.with_scores(
                keyword_score=keyword,
                structural_score=structural,
                semantic_score=semantic if hybrid else None,
                combined_score=combined,
            )
        )
    strategy: SearchStrategy = "hybrid" if hybrid else "keyword"
    logger.debug("chunks_scored", extra={"chunks": len(scored), "strategy": strategy})
    return ScoringOutcome(chunks=scored, strategy=strategy)


def rank_chunks(chunks: Sequence[DocumentChunk]) -> list[DocumentChunk]:
    """Sort by combined score, highest first; ties keep document order."""
    return sorted(chunks, key=lambda chunk: (-(chunk.combined_score or 0.0), chunk.start_index))
