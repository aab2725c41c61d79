from __future__ import annotations

"""Structure-aware document chunking."""

import re
from dataclasses import dataclass
from typing import Literal

from doc_context.rag.types import ChunkType, DocumentChunk

LineKind = Literal["blank", "heading", "list", "table", "body"]

_WORD_RE = re.compile(r"\S+")
_MARKDOWN_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+(?P<title>.+?)\s*#*\s*$")
_DIVISION_HEADING_RE = re.compile(
    r"^\s*(?P<kind>chapter|section|part|unit|lesson|module|appendix)\s+"
    r"(?:\d+(?:\.\d+)*|[ivxlc]+|[a-z])\b(?P<rest>.*)$",
    re.IGNORECASE,
)
_MULTILEVEL_HEADING_RE = re.compile(r"^\s*\d+(?:\.\d+)+\.?\s+\S")
_NUMBERED_HEADING_RE = re.compile(r"^\s*\d+\.\s+[A-Z]")
_LIST_ITEM_RE = re.compile(
    r"^\s*(?:[-*+•]\s+|\d+[.)]\s+|[a-zA-Z][.)]\s+|\([a-zA-Z0-9]{1,3}\)\s+)"
)
_SENTENCE_END_RE = re.compile(r"[.!?;,]\s*$")

_MAX_HEADING_WORDS = 12
_DIVISION_LEVELS = {"section": 2, "lesson": 2}


@dataclass(frozen=True)
class _Line:
    text: str
    start: int
    end: int
    kind: LineKind


@dataclass
class _Block:
    title: str | None
    kind: ChunkType
    start: int
    end: int


@dataclass(frozen=True)
class _Heading:
    text: str
    level: int
    inferred: bool


def _is_table_row(line: str) -> bool:
    return line.count("|") >= 2 or line.count("\t") >= 2


def _is_all_caps_heading(line: str) -> bool:
    letters = [char for char in line if char.isalpha()]
    if len(letters) < 3 or len(line.split()) > 10:
        return False
    return all(char.isupper() for char in letters)


def _is_division_heading(line: str) -> bool:
    """``Chapter 3``, ``Chapter 3: Soil`` or ``Section 2 Watering``, but not a sentence."""
    match = _DIVISION_HEADING_RE.match(line)
    if not match:
        return False
    rest = match.group("rest").strip()
    return not rest or not rest[0].isalpha() or rest[0].isupper()


def _is_title_with_colon(line: str) -> bool:
    if not line.endswith(":"):
        return False
    words = [word for word in line[:-1].split() if word[:1].isalpha()]
    if not words or len(line.split()) > 8 or not words[0][0].isupper():
        return False
    capitalized = sum(1 for word in words if word[0].isupper())
    return capitalized / len(words) >= 0.6


def classify_line(line: str, neighbours_are_list: bool = False) -> LineKind:
    """Classify a single line of a document.

    ``neighbours_are_list`` marks a line whose adjacent lines are list items,
    which turns a short ``1. Title`` line into a list item instead of a heading.
    """
    stripped = line.strip()
    if not stripped:
        return "blank"
    if _is_table_row(stripped):
        return "table"
    if _MARKDOWN_HEADING_RE.match(stripped):
        return "heading"
    short = len(stripped.split()) <= _MAX_HEADING_WORDS and not _SENTENCE_END_RE.search(stripped)
    if short and (_is_division_heading(stripped) or _MULTILEVEL_HEADING_RE.match(stripped)):
        return "heading"
    if (
        short
        and not neighbours_are_list
        and len(stripped.split()) <= 8
        and _NUMBERED_HEADING_RE.match(stripped)
    ):
        return "heading"
    if _LIST_ITEM_RE.match(stripped):
        return "list"
    if _is_all_caps_heading(stripped) or _is_title_with_colon(stripped):
        return "heading"
    return "body"


def heading_text(line: str) -> str:
    stripped = line.strip()
    match = _MARKDOWN_HEADING_RE.match(stripped)
    if match:
        stripped = match.group("title")
    return stripped.rstrip(":").strip()


def heading_level(line: str) -> int | None:
    """Nesting depth of a heading line, or ``None`` when the line does not say."""
    stripped = line.strip()
    if _MARKDOWN_HEADING_RE.match(stripped):
        return len(stripped) - len(stripped.lstrip("#"))
    if _MULTILEVEL_HEADING_RE.match(stripped):
        return len(stripped.split()[0].rstrip(".").split("."))
    match = _DIVISION_HEADING_RE.match(stripped)
    if match:
        return _DIVISION_LEVELS.get(match.group("kind").lower(), 1)
    return None


def _push_heading(stack: list[_Heading], line: str, follows_heading: bool) -> None:
    level = heading_level(line)
    inferred = level is None
    if level is None:
        # Unnumbered headings nest under the heading above them and replace
        # an earlier unnumbered sibling.
        if not stack:
            level = 1
        elif follows_heading or not stack[-1].inferred:
            level = stack[-1].level + 1
        else:
            level = stack[-1].level
    while stack and stack[-1].level >= level:
        stack.pop()
    stack.append(_Heading(text=heading_text(line), level=level, inferred=inferred))


def _heading_path(stack: list[_Heading]) -> str | None:
    return " > ".join(heading.text for heading in stack) or None


def _scan_lines(content: str) -> list[_Line]:
    raw: list[tuple[str, int, int]] = []
    offset = 0
    for line in content.splitlines(keepends=True):
        text = line.rstrip("\r\n")
        raw.append((text, offset, offset + len(text)))
        offset += len(line)

    list_flags = [bool(_LIST_ITEM_RE.match(text.strip())) for text, _, _ in raw]
    lines: list[_Line] = []
    for index, (text, start, end) in enumerate(raw):
        neighbours = (index > 0 and list_flags[index - 1]) or (
            index + 1 < len(raw) and list_flags[index + 1]
        )
        lines.append(_Line(text=text, start=start, end=end, kind=classify_line(text, neighbours)))
    return lines


def extract_headings(content: str) -> list[str]:
    """Return heading texts in document order."""
    return [heading_text(line.text) for line in _scan_lines(content) if line.kind == "heading"]


def _build_blocks(lines: list[_Line]) -> list[_Block]:
    blocks: list[_Block] = []
    current: _Block | None = None
    headings: list[_Heading] = []
    heading_start: int | None = None
    kind_map: dict[str, ChunkType] = {"body": "paragraph", "list": "list", "table": "table"}

    for line in lines:
        if line.kind == "blank":
            continue
        if line.kind == "heading":
            if current is not None:
                blocks.append(current)
                current = None
            _push_heading(headings, line.text, follows_heading=heading_start is not None)
            if heading_start is None:
                heading_start = line.start
            continue

        title = _heading_path(headings)
        block_kind = kind_map[line.kind]
        if block_kind == "paragraph" and title is not None:
            block_kind = "section"
        if current is not None and current.kind == block_kind and heading_start is None:
            current.end = line.end
        else:
            if current is not None:
                blocks.append(current)
            start = heading_start if heading_start is not None else line.start
            current = _Block(title=title, kind=block_kind, start=start, end=line.end)
        heading_start = None

    if current is not None:
        blocks.append(current)
    if heading_start is not None:
        blocks.append(
            _Block(title=_heading_path(headings), kind="section", start=heading_start, end=lines[-1].end)
        )
    return blocks


def _window_spans(content: str, start: int, end: int, size: int, overlap: int) -> list[tuple[int, int]]:
    words = list(_WORD_RE.finditer(content, start, end))
    if not words:
        return []
    if len(words) <= size:
        return [(words[0].start(), words[-1].end())]
    step = size - overlap
    spans: list[tuple[int, int]] = []
    index = 0
    while index < len(words):
        last = min(len(words), index + size) - 1
        spans.append((words[index].start(), words[last].end()))
        if last >= len(words) - 1:
            break
        index += step
    return spans


def chunk_document(content: str, chunk_size: int = 1000, overlap: int = 200) -> list[DocumentChunk]:
    """Split a document into chunks that follow its structure.

    Sections are bounded by headings and by list/table boundaries. A section
    longer than ``chunk_size`` words is split with a sliding window that steps
    ``chunk_size - overlap`` words. Documents without detectable structure are
    chunked with the sliding window alone. The result depends only on the
    arguments.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be greater than zero")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError("overlap must be between zero and chunk_size")
    if not content.strip():
        return []

    lines = _scan_lines(content)
    structured = any(line.kind in {"heading", "list", "table"} for line in lines)
    if structured:
        blocks = _build_blocks(lines)
    else:
        blocks = [_Block(title=None, kind="paragraph", start=0, end=len(content))]

    chunks: list[DocumentChunk] = []
    for block in blocks:
        for start, end in _window_spans(content, block.start, block.end, chunk_size, overlap):
            text = content[start:end]
            if not text.strip():
                continue
            chunks.append(
                DocumentChunk(
                    id=f"chunk_{len(chunks)}",
                    content=text,
                    start_index=start,
                    end_index=end,
                    section_title=block.title,
                    chunk_type=block.kind,
                )
            )
    return chunks
