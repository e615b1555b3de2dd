"""Document indexing pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Sequence

from docmonitor.errors import IndexOpenError, IndexWriteError, handle_error
from docmonitor.index.storage import IndexStore
from docmonitor.ingestion.dispatcher import extract
from docmonitor.models import ExtractionResult, IndexedDocument
from docmonitor.utils.files import iter_supported_paths

LOGGER = logging.getLogger(__name__)


def build_document(path: Path, text: Optional[str]) -> IndexedDocument:
    """Combine extracted text with filesystem metadata.

    Raises ``OSError`` if the file cannot be stat'ed.
    """
    path = Path(path).absolute()
    stat = path.stat()
    return IndexedDocument(
        path=path,
        filename=path.name,
        extension=path.suffix.lower(),
        modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        content=text or "",
    )


@dataclass(slots=True)
class IndexStats:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    empty: int = 0
    failed: int = 0
    processed_files: list[Path] = field(default_factory=list)

    def increment(self, status: str, path: Path) -> None:
        if status == "inserted":
            self.inserted += 1
        elif status == "updated":
            self.updated += 1
        elif status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1
        self.processed_files.append(path)


class Indexer:
    """Runs extract → build → upsert for files and commits through the store."""

    def __init__(
        self,
        store: IndexStore,
        *,
        extractor: Callable[[Path], ExtractionResult] = extract,
    ) -> None:
        self.store = store
        self.extractor = extractor

    def index(self, paths: Sequence[Path]) -> IndexStats:
        """Index every supported file under ``paths`` and commit once at the end."""
        stats = IndexStats()
        for path in iter_supported_paths(paths):
            try:
                status, has_text = self._stage(path)
            except (IndexOpenError, IndexWriteError):
                raise
            except Exception as exc:
                handle_error(exc, path, context="index")
                stats.failed += 1
                stats.processed_files.append(path)
                continue
            stats.increment(status, path)
            if status != "skipped" and not has_text:
                stats.empty += 1
        self.store.commit()
        return stats

    def index_file(self, path: Path) -> str:
        """Index a single file and commit it.

        Returns ``"inserted"``, ``"updated"``, ``"skipped"`` (the file could
        not be read, so its indexed entry is left as it was) or ``"failed"``.
        An :class:`IndexWriteError` from the commit propagates.
        """
        try:
            status, _ = self._stage(path)
        except (IndexOpenError, IndexWriteError):
            raise
        except Exception as exc:
            handle_error(exc, path, context="index")
            return "failed"
        if status == "skipped":
            return status
        self.store.commit()
        LOGGER.info("Indexed: %s", path)
        return status

    def _stage(self, path: Path) -> tuple[str, bool]:
        result = self.extractor(path)
        if not result.readable:
            return "skipped", False
        document = build_document(path, result.text)
        existed = self.store.contains(document.path)
        self.store.upsert(document)
        return ("updated" if existed else "inserted"), bool(document.content)

