"""Tokenization for indexed and queried text.

An analyzer is any callable ``text -> list[str]``. It must be pure and
deterministic: the same analyzer is applied at index time and at query time.
"""

from __future__ import annotations

import re
from typing import Callable, FrozenSet, List

Analyzer = Callable[[str], List[str]]

ENGLISH_STOP_WORDS: FrozenSet[str] = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "but", "by", "for", "if",
        "in", "into", "is", "it", "no", "not", "of", "on", "or", "such", "that",
        "the", "their", "then", "there", "these", "they", "this", "to", "was",
        "will", "with",
    }
)

_WORD_RE = re.compile(r"\w+", re.UNICODE)


class StandardAnalyzer:
    """Lowercasing word tokenizer with an English stop-word filter."""

    def __init__(self, stop_words: FrozenSet[str] = ENGLISH_STOP_WORDS) -> None:
        self.stop_words = frozenset(stop_words)

    def __call__(self, text: str) -> List[str]:
        if not text:
            return []
        return [
            token
            for token in (match.group(0).lower() for match in _WORD_RE.finditer(text))
            if token not in self.stop_words
        ]

    def __repr__(self) -> str:
        return f"StandardAnalyzer(stop_words={len(self.stop_words)})"


class SimpleAnalyzer(StandardAnalyzer):
    """Lowercasing word tokenizer without stop words."""

    def __init__(self) -> None:
        super().__init__(frozenset())


def keyword_token(value: str, *, lowercase: bool = False) -> List[str]:
    """Index a keyword field verbatim as a single token."""
    if not value:
        return []
    return [value.lower() if lowercase else value]
