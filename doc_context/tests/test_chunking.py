from __future__ import annotations

"""Chunking behavior tests."""

import pytest

from doc_context.rag.chunking import chunk_document, classify_line, extract_headings


def test_classify_line_detects_headings_lists_and_tables() -> None:
    assert classify_line("## Installation") == "heading"
    assert classify_line("Chapter 4: Results") == "heading"
    assert classify_line("2.3 Memory Layout") == "heading"
    assert classify_line("INTRODUCTION") == "heading"
    assert classify_line("Key Findings:") == "heading"
    assert classify_line("- first bullet") == "list"
    assert classify_line("b) lettered option") == "list"
    assert classify_line("| name | value |") == "table"
    assert classify_line("   ") == "blank"
    assert classify_line("This is an ordinary sentence about the topic.") == "body"
    assert classify_line("Section 3 covers the basics of soil") == "body"
    assert classify_line("Chapter 2 introduces composting") == "body"
    assert classify_line("Section 3 Soil Basics") == "heading"


def test_numbered_line_next_to_list_items_is_a_list_item() -> None:
    assert classify_line("1. Apples", neighbours_are_list=False) == "heading"
    assert classify_line("1. Apples", neighbours_are_list=True) == "list"


def test_sections_carry_titles_and_types() -> None:
    content = "\n".join(
        [
            "# Overview",
            "The service stores documents for later retrieval.",
            "",
            "- fast lookups",
            "- bounded memory",
            "",
            "## Limits",
            "| key | value |",
            "| --- | ----- |",
            "| size | 10 |",
        ]
    )

    chunks = chunk_document(content, chunk_size=50, overlap=10)

    assert [chunk.chunk_type for chunk in chunks] == ["section", "list", "table"]
    assert chunks[0].section_title == "Overview"
    assert chunks[0].content.startswith("# Overview")
    assert chunks[1].section_title == "Overview"
    assert chunks[2].section_title == "Overview > Limits"
    assert [chunk.id for chunk in chunks] == ["chunk_0", "chunk_1", "chunk_2"]
    for chunk in chunks:
        assert content[chunk.start_index : chunk.end_index] == chunk.content


def test_consecutive_headings_merge_into_one_title() -> None:
    content = "# Chapter 3\n## 3.1 Setup\nInstall the package first.\n"

    chunks = chunk_document(content)

    assert len(chunks) == 1
    assert chunks[0].section_title == "Chapter 3 > 3.1 Setup"


def test_nested_sections_keep_their_chapter_in_the_title() -> None:
    content = "\n".join(
        [
            "# Chapter 3: Irrigation",
            "Water early in the morning.",
            "## Section 1",
            "Drip lines save water.",
            "## Section 2",
            "Sprinklers cover lawns.",
            "### Timers",
            "Set timers before dawn.",
            "## Section 3",
            "Check the soil weekly.",
            "# Chapter 4: Composting",
            "Collect kitchen waste.",
        ]
    )

    titles = [chunk.section_title for chunk in chunk_document(content)]

    assert titles == [
        "Chapter 3: Irrigation",
        "Chapter 3: Irrigation > Section 1",
        "Chapter 3: Irrigation > Section 2",
        "Chapter 3: Irrigation > Section 2 > Timers",
        "Chapter 3: Irrigation > Section 3",
        "Chapter 4: Composting",
    ]


def test_unnumbered_headings_replace_their_previous_sibling() -> None:
    content = "CHAPTER ONE\nKey Points:\nFirst body line.\nSummary:\nSecond body line.\n"

    titles = [chunk.section_title for chunk in chunk_document(content)]

    assert titles == ["CHAPTER ONE > Key Points", "CHAPTER ONE > Summary"]


def test_long_section_uses_sliding_window() -> None:
    content = "# Notes\n" + " ".join(f"word{index}" for index in range(250))

    chunks = chunk_document(content, chunk_size=100, overlap=20)

    assert len(chunks) == 3
    assert all(len(chunk.content.split()) <= 100 for chunk in chunks)
    assert chunks[1].content.split()[0] == "word78"
    assert chunks[-1].content.split()[-1] == "word249"


def test_plain_text_falls_back_to_sliding_window() -> None:
    content = " ".join(f"token{index}" for index in range(30))

    chunks = chunk_document(content, chunk_size=10, overlap=5)

    assert chunks[0].section_title is None
    assert chunks[0].chunk_type == "paragraph"
    assert chunks[0].content.split() == [f"token{index}" for index in range(10)]
    assert chunks[1].content.split()[0] == "token5"


def test_empty_and_whitespace_documents_produce_no_chunks() -> None:
    assert chunk_document("") == []
    assert chunk_document("  \n\n\t ") == []


def test_chunking_is_idempotent(book_text: str) -> None:
    first = chunk_document(book_text, chunk_size=120, overlap=30)
    second = chunk_document(book_text, chunk_size=120, overlap=30)

    assert first == second
    assert all(chunk.content.strip() for chunk in first)


def test_invalid_overlap_is_rejected() -> None:
    with pytest.raises(ValueError):
        chunk_document("some text", chunk_size=10, overlap=10)


def test_extract_headings(book_text: str) -> None:
    headings = extract_headings(book_text)

    assert len(headings) == 8
    assert headings[2].startswith("Chapter 3")
