from __future__ import annotations

import pytest

from doc_context.rag.embeddings import EmbeddingError, HashEmbedder, cosine_similarity
from doc_context.rag.scoring import (
    base_score,
    combine_scores,
    extract_keywords,
    keyword_score,
    rank_chunks,
    score_chunks,
    structural_score,
)
from doc_context.rag.types import DocumentChunk


def make_chunk(content: str, title: str | None = None, index: int = 0) -> DocumentChunk:
    return DocumentChunk(
        id=f"chunk_{index}",
        content=content,
        start_index=index * 1000,
        end_index=index * 1000 + len(content),
        section_title=title,
    )


def test_extract_keywords_drops_stop_words_and_short_tokens() -> None:
    assert extract_keywords("What is the refund policy for EU orders?") == ["refund", "policy", "orders"]


def test_exact_phrase_outscores_scattered_keywords() -> None:
    query = "refund policy"
    phrase = "Our refund policy allows returns within thirty days of delivery."
    scattered = "Our policy allows a refund for returns within thirty days of delivery."

    assert keyword_score(query, phrase) > keyword_score(query, scattered)


def test_repeated_keywords_are_capped() -> None:
    few = "latency " * 4 + "compost " * 36
    many = "latency " * 40

    assert keyword_score("latency budget", few) == pytest.approx(keyword_score("latency budget", many))


def test_numbered_item_query_rewards_matching_item() -> None:
    content = "Steps:\n1. Unpack the box\n2. Plug in the cable\n3. Press the power button\n"

    with_item = keyword_score("what is the 3rd step", content)
    without_item = keyword_score("what is the 9th step", content)

    assert with_item > without_item


def test_appending_exact_phrase_never_lowers_keyword_score() -> None:
    query = "composting kitchen waste"
    base = (
        "Gardeners often collect vegetable peelings and coffee grounds. "
        "Turning the pile every week keeps it aerated and speeds up decomposition. "
    ) * 3

    assert keyword_score(query, base + " composting kitchen waste") >= keyword_score(query, base)


@pytest.mark.parametrize(
    ("query", "content"),
    [
        ("what is the 3rd step", "3. Press:"),
        ("refund policy", "refund policy"),
        ("refund policy", "Ask support about the refund policy"),
        ("latency", "latency " * 6),
    ],
)
def test_appending_phrase_to_strong_chunk_never_lowers_keyword_score(query: str, content: str) -> None:
    appended = f"{content} {query}"

    assert keyword_score(query, appended) >= keyword_score(query, content)


def test_structural_score_rewards_exact_chapter() -> None:
    query = "What topics are covered in chapter 3?"
    chapter_three = make_chunk("Details about irrigation.", title="Chapter 3: Irrigation")
    chapter_seven = make_chunk("Details about harvesting.", title="Chapter 7: Harvesting")

    assert structural_score(query, chapter_three) > structural_score(query, chapter_seven) > 0


def test_structural_score_ignores_casual_for_example() -> None:
    query = "Explain example 2"
    formal = make_chunk("Example 2 walks through the calculation step by step.")
    casual = make_chunk("There are many cases, for example, the step by step calculation.")

    assert structural_score(query, formal) > 0
    assert structural_score(query, casual) == 0


def test_cosine_similarity_edge_cases() -> None:
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0
    with pytest.raises(EmbeddingError):
        cosine_similarity([1.0], [1.0, 0.0])


def test_combination_formula() -> None:
    assert base_score(2.0, 4.0) == pytest.approx(5.0)
    assert combine_scores(10.0, 0.5, 0.6) == pytest.approx(0.5 * 0.6 * 0.4 + 10.0 * 0.4 * 0.6)


def test_score_chunks_without_embeddings_is_keyword_strategy() -> None:
    chunks = [make_chunk("irrigation schedules for dry summers", index=0), make_chunk("pruning", index=1)]

    outcome = score_chunks("irrigation schedules", chunks, hybrid_weight=0.6)

    assert outcome.strategy == "keyword"
    assert outcome.chunks[0].semantic_score is None
    assert outcome.chunks[0].combined_score == pytest.approx(
        base_score(outcome.chunks[0].keyword_score or 0.0, outcome.chunks[0].structural_score or 0.0)
    )
    assert chunks[0].combined_score is None


def test_score_chunks_with_embeddings_is_hybrid() -> None:
    embedder = HashEmbedder()
    texts = ["irrigation schedules for dry summers", "pruning fruit trees"]
    chunks = [
        make_chunk(text, index=index).with_embedding(embedder.embed(text))
        for index, text in enumerate(texts)
    ]

    outcome = score_chunks(
        "irrigation schedules",
        chunks,
        hybrid_weight=0.6,
        query_embedding=embedder.embed("irrigation schedules"),
    )

    assert outcome.strategy == "hybrid"
    ranked = rank_chunks(outcome.chunks)
    assert ranked[0].id == "chunk_0"
    assert (ranked[0].semantic_score or 0.0) > 0
