"""Index service owning the single index writer."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from docmonitor.errors import IndexWriteError
from docmonitor.index.analysis import Analyzer
from docmonitor.index.indexer import Indexer, IndexStats
from docmonitor.index.search import DEFAULT_MAX_RESULTS, Searcher
from docmonitor.index.storage import TEXT_FIELDS, IndexStore
from docmonitor.models import ScoredResult

LOGGER = logging.getLogger(__name__)


class IndexService:
    """Explicit lifecycle around one :class:`IndexStore`.

    The change monitor and the interactive console share one service instance;
    all mutations go through its store, searches open their own readers.
    """

    def __init__(
        self,
        index_dir: Path,
        *,
        analyzer: Analyzer | None = None,
        default_fields: Sequence[str] = TEXT_FIELDS,
    ) -> None:
        self.index_dir = Path(index_dir)
        self.analyzer = analyzer
        self.default_fields = tuple(default_fields)
        self._store: Optional[IndexStore] = None
        self._indexer: Optional[Indexer] = None
        self._searcher: Optional[Searcher] = None

    def __enter__(self) -> "IndexService":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._store is not None

    @property
    def store(self) -> IndexStore:
        self._require_open()
        return self._store

    @property
    def indexer(self) -> Indexer:
        self._require_open()
        return self._indexer

    @property
    def searcher(self) -> Searcher:
        self._require_open()
        return self._searcher

    def _require_open(self) -> None:
        if self._store is None:
            raise IndexWriteError("Index service is not open")

    def open(self) -> "IndexService":
        if self._store is None:
            self._store = IndexStore(self.index_dir, analyzer=self.analyzer)
            self._indexer = Indexer(self._store)
            self._searcher = Searcher(self._store, default_fields=self.default_fields)
            LOGGER.debug("Opened index at %s", self.index_dir)
        return self

    def close(self) -> None:
        """Flush any uncommitted changes and release the store."""
        store, self._store = self._store, None
        self._indexer = self._searcher = None
        if store is not None:
            store.close()
            LOGGER.debug("Closed index at %s", self.index_dir)

    def index_paths(self, paths: Sequence[Path]) -> IndexStats:
        return self.indexer.index(paths)

    def index_file(self, path: Path) -> str:
        return self.indexer.index_file(path)

    def delete(self, path: Path) -> None:
        self.store.delete(Path(path).absolute())
        self.store.commit()

    def prune(self) -> int:
        return self.store.remove_missing_files()

    def search(
        self,
        query_text: str,
        *,
        fields: Optional[Sequence[str]] = None,
        max_results: int = DEFAULT_MAX_RESULTS,
    ) -> List[ScoredResult]:
        return self.searcher.search(query_text, fields=fields, max_results=max_results)
