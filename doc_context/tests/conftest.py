from __future__ import annotations

"""Shared pytest fixtures and test environment defaults."""

import os
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ["EMBEDDING_PROVIDER"] = "hash"
os.environ["EMBEDDING_DIMENSION"] = "384"
os.environ.pop("OPENAI_API_KEY", None)
os.environ.setdefault("EMBEDDING_WARM_UP", "false")

CHAPTER_TOPICS = {
    1: "Introduction to gardening soil preparation and climate zones",
    2: "Selecting seeds and understanding germination rates",
    3: "Irrigation systems drip lines and watering schedules",
    4: "Composting kitchen waste and building nutrient rich beds",
    5: "Pest control with companion planting and natural predators",
    6: "Pruning fruit trees and shaping hedges",
    7: "Harvesting storing and preserving vegetables",
    8: "Greenhouse management and winter growing",
}


def _filler(topic: str, chapter: int, sentences: int) -> str:
    lines = []
    for index in range(sentences):
        lines.append(
            f"Paragraph {index + 1} of this part discusses {topic.lower()} in practical detail, "
            f"covering daily routines, common mistakes and seasonal planning for chapter {chapter} readers."
        )
    return " ".join(lines)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def book_text() -> str:
    """A structured document of eight chapters, each well over the fast-path size."""
    parts = []
    for chapter, topic in CHAPTER_TOPICS.items():
        parts.append(f"# Chapter {chapter}: {topic.split(' and ')[0].title()}")
        parts.append("")
        parts.append(_filler(topic, chapter, 12))
        parts.append("")
        parts.append(f"Figure {chapter}.1 shows the main workflow for this chapter.")
        parts.append("")
    return "\n".join(parts)
