from __future__ import annotations

import math

TOKENS_PER_CHAR = 0.25


def estimate_tokens(text: str) -> int:
    """Estimate the token count of text at a fixed characters-per-token ratio."""
    if not text:
        return 0
    return math.ceil(len(text) * TOKENS_PER_CHAR)


def chars_for_tokens(tokens: int) -> int:
    """Return how many characters fit in a token budget."""
    return max(0, int(tokens / TOKENS_PER_CHAR))
