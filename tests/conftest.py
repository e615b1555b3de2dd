"""Shared fixtures."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import pytest

from docmonitor.index.storage import IndexStore
from docmonitor.models import IndexedDocument


@pytest.fixture
def make_document() -> Callable[..., IndexedDocument]:
    """Factory for in-memory documents rooted at /docs."""

    def _make(
        name: str,
        content: str = "",
        *,
        modified_at: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc),
    ) -> IndexedDocument:
        path = Path("/docs") / name
        return IndexedDocument(
            path=path,
            filename=path.name,
            extension=path.suffix,
            modified_at=modified_at,
            content=content,
        )

    return _make


@pytest.fixture
def store(tmp_path: Path):
    """Create a temporary index store."""
    index_store = IndexStore(tmp_path / "index")
    yield index_store
    index_store.close()
