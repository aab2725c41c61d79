from __future__ import annotations

"""Chunk selection under a token budget, quality checks and context formatting."""

import math
from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from doc_context.rag.scoring import extract_keywords
from doc_context.rag.tokens import chars_for_tokens, estimate_tokens
from doc_context.rag.types import DocumentChunk, QualityReport, QueryAnalysis

CONTEXT_SEPARATOR = "\n\n---\n\n"
FALLBACK_CHUNKS = 3
QUALITY_RETRY_THRESHOLD = 0.4


@dataclass(frozen=True)
class SelectionPlan:
    """Resolved selection parameters for one request."""
    threshold: float
    max_chunks: int
    max_tokens: int
    coverage_target: int = 0
    diverse: bool = False


def plan_selection(
    analysis: QueryAnalysis,
    max_tokens: int,
    min_relevance_score: float | None = None,
    max_chunks: int | None = None,
) -> SelectionPlan:
    """Merge explicit options with the classifier's suggestions.

    Queries that need broad context get a coverage target, and overview
    queries spread their picks across sections.
    """
    threshold = analysis.suggested_threshold if min_relevance_score is None else min_relevance_score
    count = analysis.suggested_chunk_count if max_chunks is None else max_chunks
    coverage = min(count, analysis.suggested_chunk_count) if analysis.needs_broad_context else 0
    return SelectionPlan(
        threshold=threshold,
        max_chunks=count,
        max_tokens=max_tokens,
        coverage_target=coverage,
        diverse=analysis.type == "overview",
    )


def relax_plan(plan: SelectionPlan, keep_count: bool = False) -> SelectionPlan:
    return SelectionPlan(
        threshold=plan.threshold * 0.5,
        max_chunks=plan.max_chunks if keep_count else math.ceil(plan.max_chunks * 1.5),
        max_tokens=plan.max_tokens,
        coverage_target=plan.coverage_target,
        diverse=plan.diverse,
    )


def pack_chunks(chunks: Iterable[DocumentChunk], max_tokens: int) -> list[DocumentChunk]:
    """Take chunks in order until the next one would overflow the budget."""
    selected: list[DocumentChunk] = []
    used = 0
    for chunk in chunks:
        tokens = estimate_tokens(chunk.content)
        if used + tokens > max_tokens:
            break
        selected.append(chunk)
        used += tokens
    return selected


def _fill(
    selected: list[DocumentChunk],
    candidates: Iterable[DocumentChunk],
    max_tokens: int,
    limit: int,
) -> list[DocumentChunk]:
    used = sum(estimate_tokens(chunk.content) for chunk in selected)
    chosen = {chunk.id for chunk in selected}
    for chunk in candidates:
        if len(selected) >= limit:
            break
        if chunk.id in chosen:
            continue
        tokens = estimate_tokens(chunk.content)
        if used + tokens > max_tokens:
            continue
        selected.append(chunk)
        chosen.add(chunk.id)
        used += tokens
    return selected


def select_chunks(ranked: Sequence[DocumentChunk], plan: SelectionPlan) -> list[DocumentChunk]:
    """Pick chunks from a ranked list.

    Chunks at or above the threshold are capped at ``max_chunks`` and packed
    greedily. When nothing survives, the top few ranked chunks that fit are
    used instead. Broad queries that fall short of their coverage target are
    topped up with further ranked chunks regardless of threshold. If no whole
    chunk fits the budget, the top chunk is trimmed to fit. Diverse plans take
    the best chunk of every section before a second chunk of any section.
    """
    if plan.diverse:
        ranked = diversify(ranked)
    passing = [chunk for chunk in ranked if (chunk.combined_score or 0.0) >= plan.threshold]
    selected = pack_chunks(passing[: plan.max_chunks], plan.max_tokens)
    if not selected:
        selected = _fill([], ranked[:FALLBACK_CHUNKS], plan.max_tokens, FALLBACK_CHUNKS)
    if plan.coverage_target and len(selected) < plan.coverage_target:
        selected = _fill(selected, ranked, plan.max_tokens, plan.coverage_target)
    if not selected and ranked:
        selected = [trim_chunk(ranked[0], plan.max_tokens)]
    return selected


def diversify(ranked: Sequence[DocumentChunk]) -> list[DocumentChunk]:
    """Reorder ranked chunks so each section's best chunk comes before any repeats."""
    leaders: list[DocumentChunk] = []
    repeats: list[DocumentChunk] = []
    seen: set[str] = set()
    for chunk in ranked:
        if chunk.section_title is None:
            leaders.append(chunk)
        elif chunk.section_title in seen:
            repeats.append(chunk)
        else:
            seen.add(chunk.section_title)
            leaders.append(chunk)
    return leaders + repeats


def add_neighbours(
    selected: Sequence[DocumentChunk],
    chunks: Sequence[DocumentChunk],
    max_tokens: int,
    limit: int | None = None,
) -> list[DocumentChunk]:
    """Add the chunks on either side of each selected chunk while the budget allows.

    ``chunks`` is the full document in order. Neighbours of higher-ranked
    selections are considered first.
    """
    position = {chunk.id: index for index, chunk in enumerate(chunks)}
    candidates: list[DocumentChunk] = []
    for chunk in selected:
        index = position.get(chunk.id)
        if index is None:
            continue
        for neighbour in (index - 1, index + 1):
            if 0 <= neighbour < len(chunks):
                candidates.append(chunks[neighbour])
    if limit is None:
        limit = len(selected) + len(candidates)
    return _fill(list(selected), candidates, max_tokens, limit)


def trim_chunk(chunk: DocumentChunk, max_tokens: int) -> DocumentChunk:
    """Cut a chunk down to the budget when no whole chunk fits."""
    content = chunk.content[: chars_for_tokens(max_tokens)]
    return replace(chunk, content=content, end_index=chunk.start_index + len(content))


def evaluate_quality(query: str, chunks: Sequence[DocumentChunk]) -> QualityReport:
    """Build a heuristic quality report for a selection."""
    if not chunks:
        return QualityReport(0.0, 0.0, 0.0, 0.0, 0.0)
    scores = [chunk.combined_score or 0.0 for chunk in chunks]
    avg_relevance = sum(scores) / len(scores)
    top = max(scores)

    keywords = extract_keywords(query)
    if keywords:
        text = " ".join(chunk.content.lower() for chunk in chunks)
        coverage = sum(1 for keyword in keywords if keyword in text) / len(keywords)
    else:
        coverage = 1.0

    if len(chunks) == 1:
        coherence = 1.0
    else:
        titles = {chunk.section_title or f"untitled:{chunk.id}" for chunk in chunks}
        coherence = len(titles) / len(chunks)

    relevance = top / (top + 1.0) if top > 0 else 0.0
    overall = 0.5 * coverage + 0.3 * relevance + 0.2 * coherence
    return QualityReport(
        avg_relevance=round(avg_relevance, 4),
        top_chunk_score=round(top, 4),
        coverage_score=round(coverage, 4),
        coherence_score=round(coherence, 4),
        overall=round(overall, 4),
    )


def needs_retry(report: QualityReport) -> bool:
    return report.overall < QUALITY_RETRY_THRESHOLD


def in_document_order(chunks: Iterable[DocumentChunk]) -> list[DocumentChunk]:
    return sorted(chunks, key=lambda chunk: chunk.start_index)


def format_context(chunks: Iterable[DocumentChunk]) -> str:
    parts: list[str] = []
    for chunk in chunks:
        content = chunk.content.strip()
        first_line = content.split("\n", 1)[0]
        if chunk.section_title and chunk.section_title.split(" > ")[-1] not in first_line:
            parts.append(f"[{chunk.section_title}]\n{content}")
        else:
            parts.append(content)
    return CONTEXT_SEPARATOR.join(parts)


def total_relevance(chunks: Iterable[DocumentChunk]) -> float:
    return round(sum(chunk.combined_score or 0.0 for chunk in chunks), 6)
