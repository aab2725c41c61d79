from __future__ import annotations

"""Query classification and query expansion."""

import math
import re

from doc_context.rag.chunking import extract_headings
from doc_context.rag.types import QueryAnalysis

MAX_TOPICS = 50
SHORT_QUERY_CHARS = 30
STRUCTURAL_EXPANSION = "chapter section figure table diagram example"

_NUMBERED_REFERENCE_RE = re.compile(
    r"\b(?:chapter|section|unit|lesson|part|module|figure|fig\.?|table|diagram|example|exercise)\s+\d+"
)

_OVERVIEW_PATTERNS = [
    re.compile(r"\btopics?\b"),
    re.compile(r"\bsummar(?:y|ize|ise|ies)\b"),
    re.compile(r"\boverview\b"),
    re.compile(r"\btable of contents\b"),
    re.compile(r"\b(?:curriculum|syllabus|outline)\b"),
    re.compile(r"\bmain (?:points|ideas|themes|concepts)\b"),
    re.compile(r"\bkey (?:points|takeaways|concepts)\b"),
    re.compile(r"\bwhat (?:is|does) (?:this|the) (?:document|book|pdf|paper|file)\b"),
]

_CHAPTER_PATTERNS = [
    _NUMBERED_REFERENCE_RE,
    re.compile(r"\bhow many (?:figures|tables|chapters|diagrams|examples|sections|exercises)\b"),
    re.compile(r"\blist (?:all|the) (?:figures|tables|chapters|diagrams|examples)\b"),
]

_TECHNICAL_PATTERNS = [
    re.compile(r"\balgorithms?\b"),
    re.compile(r"\bimplement(?:ation|ed|s)?\b"),
    re.compile(r"\bexplain\b"),
    re.compile(r"\bhow (?:does|do|is|are)\b"),
    re.compile(r"\bcompar(?:e|ison)\b"),
    re.compile(r"\bdifference between\b"),
    re.compile(r"\b(?:versus|vs\.?)\b"),
    re.compile(r"\b(?:architecture|mechanism|complexity|formula|equation|derivation|proof)\b"),
]

_SPECIFIC_PATTERNS = [
    re.compile(r"^(?:what|who|when|where|which) (?:is|are|was|were|did)\b"),
    re.compile(r"\bhow (?:much|many)\b"),
    re.compile(r"\b(?:define|definition of|meaning of)\b"),
    re.compile(r"\b\d+(?:st|nd|rd|th)\s+(?:point|item|step)\b"),
    re.compile(r"\b(?:point|item|step)\s+\d+\b"),
    re.compile(r"\"[^\"]+\""),
]

_ACRONYM_RE = re.compile(r"\b[A-Z][A-Z0-9]{1,5}s?\b")
_PROPER_PHRASE_RE = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)+\b")


def _matches(patterns: list[re.Pattern[str]], text: str) -> bool:
    return any(pattern.search(text) for pattern in patterns)


def _broad_count(total_chunks: int, share: float) -> int:
    return max(5, math.ceil(total_chunks * share))


def classify_query(query: str, total_chunks: int = 0) -> QueryAnalysis:
    """Classify a query into a retrieval strategy.

    Categories are checked in priority order: overview, chapter-reference,
    technical, specific, general. Overview wording that also names a numbered
    chapter or figure is treated as a chapter reference.
    """
    normalized = query.strip().lower()
    has_reference = bool(_NUMBERED_REFERENCE_RE.search(normalized))

    if not has_reference and _matches(_OVERVIEW_PATTERNS, normalized):
        return QueryAnalysis(
            type="overview",
            confidence=0.9,
            suggested_chunk_count=_broad_count(total_chunks, 0.8),
            suggested_threshold=0.01,
            hybrid_weight=0.3,
            needs_broad_context=True,
        )
    if _matches(_CHAPTER_PATTERNS, normalized):
        return QueryAnalysis(
            type="chapter-reference",
            confidence=0.85,
            suggested_chunk_count=_broad_count(total_chunks, 0.7),
            suggested_threshold=0.03,
            hybrid_weight=0.4,
            needs_broad_context=True,
        )
    if _matches(_TECHNICAL_PATTERNS, normalized):
        return QueryAnalysis(
            type="technical",
            confidence=0.8,
            suggested_chunk_count=8,
            suggested_threshold=0.05,
            hybrid_weight=0.7,
            needs_broad_context=False,
        )
    if _matches(_SPECIFIC_PATTERNS, normalized):
        return QueryAnalysis(
            type="specific",
            confidence=0.75,
            suggested_chunk_count=10,
            suggested_threshold=0.04,
            hybrid_weight=0.6,
            needs_broad_context=True,
        )
    if len(normalized) <= SHORT_QUERY_CHARS:
        return QueryAnalysis(
            type="general",
            confidence=0.4,
            suggested_chunk_count=8,
            suggested_threshold=0.05,
            hybrid_weight=0.6,
            needs_broad_context=True,
        )
    return QueryAnalysis(
        type="general",
        confidence=0.5,
        suggested_chunk_count=5,
        suggested_threshold=0.1,
        hybrid_weight=0.6,
        needs_broad_context=False,
    )


def extract_topics(content: str, limit: int = MAX_TOPICS) -> list[str]:
    """Collect headings, acronyms and proper-noun phrases from a document."""
    candidates = extract_headings(content)
    candidates.extend(_ACRONYM_RE.findall(content))
    candidates.extend(_PROPER_PHRASE_RE.findall(content))

    topics: list[str] = []
    seen: set[str] = set()
    for candidate in candidates:
        topic = candidate.strip()
        key = topic.lower()
        if not topic or key in seen:
            continue
        seen.add(key)
        topics.append(topic)
        if len(topics) >= limit:
            break
    return topics


def expand_query(query: str, analysis: QueryAnalysis, content: str) -> str:
    """Widen overview and chapter-reference queries with extra search terms."""
    if analysis.type == "overview":
        topics = extract_topics(content)
        return " ".join([query, *topics]) if topics else query
    if analysis.type == "chapter-reference":
        return f"{query} {STRUCTURAL_EXPANSION}"
    return query
