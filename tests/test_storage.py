"""Tests for IndexStore."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from unittest.mock import patch

import pytest

from docmonitor.errors import IndexCorruptedError, IndexOpenError, IndexWriteError
from docmonitor.index.analysis import SimpleAnalyzer
from docmonitor.index.storage import IndexStore


class TestIndexStore:
    """Test IndexStore initialization and schema."""

    def test_init_creates_index_directory(self, tmp_path: Path) -> None:
        index_dir = tmp_path / "nested" / "index"
        assert not index_dir.exists()

        store = IndexStore(index_dir)

        assert (index_dir / "index.db").exists()
        assert store.db_path == index_dir / "index.db"
        store.close()

    def test_schema_creation(self, store: IndexStore) -> None:
        """Documents and postings tables should exist."""
        conn = store.connection
        tables = {
            row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }

        assert {"documents", "postings"} <= tables

    def test_pragma_settings(self, store: IndexStore) -> None:
        """Test that WAL journaling is enabled."""
        result = store.connection.execute("PRAGMA journal_mode").fetchone()
        assert result[0].lower() == "wal"

    def test_open_failure_raises_index_open_error(self, tmp_path: Path) -> None:
        """A path that cannot hold a directory should fail loudly."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(IndexOpenError):
            IndexStore(blocker / "index")

    def test_closed_store_rejects_writes(self, tmp_path: Path, make_document) -> None:
        store = IndexStore(tmp_path / "index")
        store.close()

        with pytest.raises(IndexWriteError):
            store.upsert(make_document("a.txt", "text"))

    def test_close_is_idempotent(self, tmp_path: Path) -> None:
        store = IndexStore(tmp_path / "index")
        store.close()
        store.close()


class TestUpsert:
    """Test the replace-by-path protocol."""

    def test_upsert_not_visible_before_commit(self, store: IndexStore, make_document) -> None:
        """Buffered operations are invisible to readers until committed."""
        store.upsert(make_document("a.txt", "invoice"))

        assert store.pending_count == 1
        assert store.document_count() == 0

        store.commit()

        assert store.pending_count == 0
        assert store.document_count() == 1

    def test_idempotent_upsert(self, store: IndexStore, make_document) -> None:
        """Indexing the same document twice leaves one identical copy."""
        doc = make_document("a.txt", "invoice 2024 total")

        store.upsert(doc)
        store.commit()
        first = store.get_document(doc.path)
        store.upsert(doc)
        store.commit()

        with store.open_reader() as reader:
            assert reader.count_documents(doc.path) == 1
            assert reader.document_frequency("content", "invoice") == 1
        assert store.get_document(doc.path) == first == doc

    def test_replace_on_change(self, store: IndexStore, make_document) -> None:
        """The newest upsert for a path replaces the old postings."""
        store.upsert(make_document("a.txt", "invoice"))
        store.commit()
        store.upsert(make_document("a.txt", "archived"))
        store.commit()

        with store.open_reader() as reader:
            assert reader.count_documents("/docs/a.txt") == 1
            assert reader.postings("content", "invoice") == []
            assert len(reader.postings("content", "archived")) == 1
        assert store.get_document("/docs/a.txt").content == "archived"

    def test_later_buffered_operation_wins(self, store: IndexStore, make_document) -> None:
        """Several upserts for one path before a commit collapse to the last."""
        store.upsert(make_document("a.txt", "first"))
        store.upsert(make_document("a.txt", "second"))

        assert store.pending_count == 1
        store.commit()

        assert store.get_document("/docs/a.txt").content == "second"

    def test_postings_store_positions(self, store: IndexStore, make_document) -> None:
        store.upsert(make_document("a.txt", "alpha beta alpha"))
        store.commit()

        with store.open_reader() as reader:
            [(doc_id, frequency, positions)] = reader.postings("content", "alpha")
            assert frequency == 2
            assert positions == [0, 2]
            assert reader.field_lengths("content", [doc_id]) == {doc_id: 3}

    def test_keyword_fields_indexed(self, store: IndexStore, make_document) -> None:
        store.upsert(make_document("Report.PDF", ""))
        store.commit()

        with store.open_reader() as reader:
            assert reader.document_frequency("extension", ".pdf") == 1
            assert reader.document_frequency("path", "/docs/Report.PDF") == 1

    def test_custom_analyzer(self, tmp_path: Path, make_document) -> None:
        """The store tokenizes with whatever analyzer it is given."""
        with IndexStore(tmp_path / "index", analyzer=SimpleAnalyzer()) as store:
            store.upsert(make_document("a.txt", "the end"))
            store.commit()
            with store.open_reader() as reader:
                assert reader.document_frequency("content", "the") == 1


class TestDelete:
    """Test delete-by-path."""

    def test_delete_existing(self, store: IndexStore, make_document) -> None:
        store.upsert(make_document("a.txt", "invoice"))
        store.commit()

        store.delete("/docs/a.txt")
        store.commit()

        assert store.get_document("/docs/a.txt") is None
        with store.open_reader() as reader:
            assert reader.postings("content", "invoice") == []

    def test_delete_missing_is_noop(self, store: IndexStore, make_document) -> None:
        store.upsert(make_document("a.txt", "invoice"))
        store.commit()

        store.delete("/docs/missing.txt")
        store.commit()

        assert store.document_count() == 1

    def test_remove_missing_files(self, tmp_path: Path, store: IndexStore, make_document) -> None:
        existing = tmp_path / "kept.txt"
        existing.write_text("kept")
        doc = make_document("gone.txt", "gone")
        kept = make_document("kept.txt", "kept")
        kept.path = existing
        store.upsert(doc)
        store.upsert(kept)
        store.commit()

        removed = store.remove_missing_files()

        assert removed == 1
        assert store.all_paths() == [existing]


class TestReaders:
    """Test snapshot isolation of readers."""

    def test_reader_is_a_snapshot(self, store: IndexStore, make_document) -> None:
        store.upsert(make_document("a.txt", "one"))
        store.commit()

        with store.open_reader() as reader:
            store.upsert(make_document("b.txt", "two"))
            store.commit()

            assert reader.document_count == 1
            assert reader.postings("content", "two") == []

        with store.open_reader() as fresh:
            assert fresh.document_count == 2

    def test_durable_across_reopen(self, tmp_path: Path, make_document) -> None:
        """Committed documents survive closing and reopening the store."""
        with IndexStore(tmp_path / "index") as store:
            store.upsert(make_document("a.txt", "persisted"))
            store.commit()

        with IndexStore(tmp_path / "index") as reopened:
            assert reopened.get_document("/docs/a.txt").content == "persisted"

    def test_close_flushes_pending(self, tmp_path: Path, make_document) -> None:
        store = IndexStore(tmp_path / "index")
        store.upsert(make_document("a.txt", "flushed"))
        store.close()

        with IndexStore(tmp_path / "index") as reopened:
            assert reopened.document_count() == 1


class TestCommitFailures:
    """Test commit failure semantics."""

    def test_failed_commit_keeps_pending_for_retry(self, store: IndexStore, make_document) -> None:
        doc = make_document("a.txt", "retry me")
        store.upsert(doc)

        with patch.object(
            store, "_insert_document", side_effect=sqlite3.OperationalError("disk I/O error")
        ):
            with pytest.raises(IndexWriteError):
                store.commit()

        assert store.pending_count == 1
        assert store.document_count() == 0

        store.commit()

        assert store.get_document(doc.path) == doc

    def test_failed_commit_does_not_corrupt_committed_state(
        self, store: IndexStore, make_document
    ) -> None:
        store.upsert(make_document("a.txt", "original"))
        store.commit()
        store.upsert(make_document("a.txt", "replacement"))

        with patch.object(
            store, "_insert_document", side_effect=sqlite3.OperationalError("database is locked")
        ):
            with pytest.raises(IndexWriteError):
                store.commit()

        assert store.get_document("/docs/a.txt").content == "original"

    def test_malformed_database_is_fatal(self, store: IndexStore, make_document) -> None:
        store.upsert(make_document("a.txt", "x"))

        with patch.object(
            store,
            "_insert_document",
            side_effect=sqlite3.DatabaseError("database disk image is malformed"),
        ):
            with pytest.raises(IndexCorruptedError):
                store.commit()

    def test_commit_without_pending(self, store: IndexStore) -> None:
        assert store.commit() == 0
