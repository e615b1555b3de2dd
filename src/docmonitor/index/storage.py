"""SQLite-backed inverted index keyed by file path."""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections import defaultdict
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from docmonitor.errors import IndexCorruptedError, IndexOpenError, IndexWriteError
from docmonitor.index.analysis import Analyzer, StandardAnalyzer, keyword_token
from docmonitor.models import IndexedDocument, parse_modified

LOGGER = logging.getLogger(__name__)

INDEX_FILENAME = "index.db"
TEXT_FIELDS: Tuple[str, ...] = ("filename", "content")
KEYWORD_FIELDS: Tuple[str, ...] = ("path", "extension")
FIELDS: Tuple[str, ...] = TEXT_FIELDS + KEYWORD_FIELDS

Posting = Tuple[int, int, List[int]]


def _write_error(exc: sqlite3.Error) -> IndexWriteError:
    if isinstance(exc, sqlite3.OperationalError):
        return IndexWriteError(f"Index commit failed: {exc}")
    return IndexCorruptedError(f"Index storage is unusable: {exc}")


def _row_to_document(row: sqlite3.Row) -> IndexedDocument:
    return IndexedDocument(
        path=Path(row["path"]),
        filename=row["filename"],
        extension=row["extension"],
        modified_at=parse_modified(row["modified"]),
        content=row["content"],
    )


class IndexReader:
    """Read-only view over the index as of the moment it was opened.

    The snapshot is pinned by a read transaction held for the reader's
    lifetime; later commits become visible only to readers opened after them.
    """

    def __init__(self, db_path: Path, analyzer: Analyzer) -> None:
        self.analyzer = analyzer
        self._conn = sqlite3.connect(db_path, isolation_level=None, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        try:
            self._conn.execute("BEGIN")
            self._document_count = self._conn.execute(
                "SELECT COUNT(*) FROM documents"
            ).fetchone()[0]
        except sqlite3.Error:
            self._conn.close()
            raise

    def __enter__(self) -> "IndexReader":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._conn.in_transaction:
            self._conn.execute("ROLLBACK")
        self._conn.close()

    @property
    def document_count(self) -> int:
        return self._document_count

    def analyze(self, field: str, text: str) -> List[str]:
        """Tokenize query text exactly as ``field`` was tokenized at index time."""
        if field in KEYWORD_FIELDS:
            return keyword_token(text, lowercase=field == "extension")
        return self.analyzer(text)

    def document_frequency(self, field: str, term: str) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM postings WHERE field = ? AND term = ?",
            (field, term),
        ).fetchone()
        return int(row[0])

    def postings(self, field: str, term: str) -> List[Posting]:
        rows = self._conn.execute(
            "SELECT document_id, frequency, positions FROM postings WHERE field = ? AND term = ?",
            (field, term),
        ).fetchall()
        return [
            (row["document_id"], row["frequency"], [int(p) for p in row["positions"].split(",")])
            for row in rows
        ]

    def terms_with_prefix(self, field: str, prefix: str) -> List[str]:
        rows = self._conn.execute(
            """
            SELECT DISTINCT term FROM postings
            WHERE field = ? AND substr(term, 1, ?) = ?
            ORDER BY term
            """,
            (field, len(prefix), prefix),
        ).fetchall()
        return [row["term"] for row in rows]

    def field_lengths(self, field: str, document_ids: Iterable[int]) -> Dict[int, int]:
        ids = list(document_ids)
        if field in KEYWORD_FIELDS:
            return {doc_id: 1 for doc_id in ids}
        column = f"{field}_length"
        lengths: Dict[int, int] = {}
        for doc_id, length in self._select_by_ids(f"id, {column}", ids):
            lengths[doc_id] = length
        return lengths

    def summaries(self, document_ids: Iterable[int]) -> Dict[int, sqlite3.Row]:
        """Fetch the stored display fields (no content) for the given documents."""
        return {
            row["id"]: row
            for row in self._select_by_ids("id, path, filename, extension, modified", list(document_ids))
        }

    def _select_by_ids(self, columns: str, ids: Sequence[int]) -> List[sqlite3.Row]:
        rows: List[sqlite3.Row] = []
        # Stay under SQLite's bound-parameter limit.
        for start in range(0, len(ids), 500):
            batch = ids[start : start + 500]
            placeholders = ",".join("?" for _ in batch)
            rows.extend(
                self._conn.execute(
                    f"SELECT {columns} FROM documents WHERE id IN ({placeholders})", batch
                ).fetchall()
            )
        return rows

    def get_document(self, path: Path | str) -> Optional[IndexedDocument]:
        row = self._conn.execute(
            "SELECT * FROM documents WHERE path = ?", (str(path),)
        ).fetchone()
        return _row_to_document(row) if row else None

    def count_documents(self, path: Path | str) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM documents WHERE path = ?", (str(path),)
        ).fetchone()
        return int(row[0])

    def all_paths(self) -> List[Path]:
        rows = self._conn.execute("SELECT path FROM documents ORDER BY path").fetchall()
        return [Path(row["path"]) for row in rows]


class IndexStore:
    """Single writer for the on-disk index.

    ``upsert`` and ``delete`` only buffer work; ``commit`` applies the buffer in
    one transaction. The buffer is dropped only after a successful commit.
    """

    def __init__(self, index_dir: Path, *, analyzer: Analyzer | None = None) -> None:
        self.index_dir = Path(index_dir)
        self.db_path = self.index_dir / INDEX_FILENAME
        self.analyzer: Analyzer = analyzer or StandardAnalyzer()
        self._lock = threading.RLock()
        self._pending: Dict[str, Optional[IndexedDocument]] = {}
        self._closed = False
        try:
            self.index_dir.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                self.db_path,
                isolation_level="IMMEDIATE",
                check_same_thread=False,
                timeout=5.0,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
            self._ensure_schema()
        except (OSError, sqlite3.Error) as exc:
            raise IndexOpenError(f"Cannot open index at {self.index_dir}: {exc}") from exc

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def __enter__(self) -> "IndexStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Commit anything still buffered, then release the connection."""
        with self._lock:
            if self._closed:
                return
            try:
                self.commit()
            finally:
                self._closed = True
                self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id INTEGER PRIMARY KEY,
                    path TEXT NOT NULL UNIQUE,
                    filename TEXT NOT NULL,
                    extension TEXT NOT NULL,
                    modified TEXT NOT NULL,
                    content TEXT NOT NULL,
                    filename_length INTEGER NOT NULL,
                    content_length INTEGER NOT NULL,
                    indexed_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS postings (
                    term TEXT NOT NULL,
                    field TEXT NOT NULL,
                    document_id INTEGER NOT NULL,
                    frequency INTEGER NOT NULL,
                    positions TEXT NOT NULL,
                    PRIMARY KEY (field, term, document_id),
                    FOREIGN KEY(document_id) REFERENCES documents(id) ON DELETE CASCADE
                )
                """
            )
            conn.execute(
                """CREATE INDEX IF NOT EXISTS idx_postings_document_id
                    ON postings(document_id)
                """
            )

    def upsert(self, document: IndexedDocument) -> None:
        """Replace whatever is indexed for ``document.path`` with ``document``."""
        with self._lock:
            self._ensure_open()
            self._pending[str(document.path)] = document

    def delete(self, path: Path | str) -> None:
        """Remove every document stored for ``path``; a no-op if none exists."""
        with self._lock:
            self._ensure_open()
            self._pending[str(path)] = None

    def commit(self) -> int:
        """Apply and persist all buffered operations.

        Returns the number of operations applied. Raises
        :class:`IndexWriteError` when the transaction fails; the buffer is then
        kept intact for a retry.
        """
        with self._lock:
            self._ensure_open()
            if not self._pending:
                return 0
            operations = list(self._pending.items())
            try:
                with self.transaction() as conn:
                    for path, document in operations:
                        self._delete_path(conn, path)
                        if document is not None:
                            self._insert_document(conn, document)
            except sqlite3.Error as exc:
                error = _write_error(exc)
                LOGGER.error("%s (%d pending operations kept)", error, len(operations))
                raise error from exc
            self._pending.clear()
            LOGGER.debug("Committed %d index operations", len(operations))
            return len(operations)

    def open_reader(self) -> IndexReader:
        """Open a snapshot reader over the last committed state."""
        self._ensure_open()
        try:
            return IndexReader(self.db_path, self.analyzer)
        except sqlite3.Error as exc:
            raise IndexOpenError(f"Cannot open index reader at {self.db_path}: {exc}") from exc

    def document_count(self) -> int:
        with self.open_reader() as reader:
            return reader.document_count

    def contains(self, path: Path | str) -> bool:
        with self.open_reader() as reader:
            return reader.count_documents(path) > 0

    def get_document(self, path: Path | str) -> Optional[IndexedDocument]:
        with self.open_reader() as reader:
            return reader.get_document(path)

    def all_paths(self) -> List[Path]:
        with self.open_reader() as reader:
            return reader.all_paths()

    def remove_missing_files(self) -> int:
        """Delete documents whose files no longer exist."""
        missing = [path for path in self.all_paths() if not path.exists()]
        with self._lock:
            for path in missing:
                self.delete(path)
            self.commit()
        return len(missing)

    def _ensure_open(self) -> None:
        if self._closed:
            raise IndexWriteError("Index store is closed")

    def _delete_path(self, conn: sqlite3.Connection, path: str) -> None:
        rows = conn.execute("SELECT id FROM documents WHERE path = ?", (path,)).fetchall()
        for row in rows:
            conn.execute("DELETE FROM postings WHERE document_id = ?", (row["id"],))
            conn.execute("DELETE FROM documents WHERE id = ?", (row["id"],))

    def _field_tokens(self, document: IndexedDocument) -> Dict[str, List[str]]:
        return {
            "filename": self.analyzer(document.filename),
            "content": self.analyzer(document.content),
            "path": keyword_token(str(document.path)),
            "extension": keyword_token(document.extension, lowercase=True),
        }

    def _insert_document(self, conn: sqlite3.Connection, document: IndexedDocument) -> None:
        tokens = self._field_tokens(document)
        doc_id = conn.execute(
            """
            INSERT INTO documents(
                path, filename, extension, modified, content, filename_length, content_length
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(document.path),
                document.filename,
                document.extension,
                document.modified,
                document.content,
                len(tokens["filename"]),
                len(tokens["content"]),
            ),
        ).lastrowid

        rows = []
        for field, field_tokens in tokens.items():
            positions: Dict[str, List[int]] = defaultdict(list)
            for position, token in enumerate(field_tokens):
                positions[token].append(position)
            for term, term_positions in positions.items():
                rows.append(
                    (term, field, doc_id, len(term_positions), ",".join(map(str, term_positions)))
                )
        conn.executemany(
            """
            INSERT INTO postings(term, field, document_id, frequency, positions)
            VALUES (?, ?, ?, ?, ?)
            """,
            rows,
        )
