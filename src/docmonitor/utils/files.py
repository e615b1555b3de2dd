"""Utility helpers for working with files."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator

SUPPORTED_EXTENSIONS = frozenset({".docx", ".pptx", ".xlsx", ".pdf", ".md", ".txt", ".eml"})


def is_supported(path: Path) -> bool:
    return Path(path).suffix.lower() in SUPPORTED_EXTENSIONS


def iter_supported_paths(inputs: Iterable[Path]) -> Iterator[Path]:
    """Yield supported document paths from input paths, descending into directories."""
    for item in inputs:
        item = Path(item)
        if item.is_dir():
            yield from sorted(
                child for child in item.rglob("*") if child.is_file() and is_supported(child)
            )
        elif item.is_file() and is_supported(item):
            yield item
