"""Tests for Indexer."""

from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from docmonitor.errors import IndexWriteError
from docmonitor.index.indexer import Indexer, IndexStats, build_document
from docmonitor.index.storage import IndexStore
from docmonitor.models import ExtractionResult


class TestIndexStats:
    """Test IndexStats tracking."""

    def test_init_defaults(self):
        """Test default initialization."""
        stats = IndexStats()
        assert stats.inserted == 0
        assert stats.updated == 0
        assert stats.empty == 0
        assert stats.failed == 0
        assert stats.processed_files == []

    def test_increment_inserted(self):
        """Test incrementing inserted count."""
        stats = IndexStats()
        path = Path("/tmp/test.txt")

        stats.increment("inserted", path)

        assert stats.inserted == 1
        assert stats.updated == 0
        assert path in stats.processed_files

    def test_increment_updated(self):
        """Test incrementing updated count."""
        stats = IndexStats()
        path = Path("/tmp/test.txt")

        stats.increment("updated", path)

        assert stats.updated == 1
        assert stats.inserted == 0

    def test_increment_failed(self):
        """Test incrementing failed count."""
        stats = IndexStats()

        stats.increment("failed", Path("/tmp/test.txt"))

        assert stats.failed == 1

    def test_increment_skipped(self):
        """Test that skipped files are counted apart from failures."""
        stats = IndexStats()

        stats.increment("skipped", Path("/tmp/test.txt"))

        assert stats.skipped == 1
        assert stats.failed == 0


class TestBuildDocument:
    """Test build_document."""

    def test_metadata_from_filesystem(self, tmp_path):
        """Test that path, name, extension and mtime come from the file."""
        file_path = tmp_path / "Report.TXT"
        file_path.write_text("hello")

        doc = build_document(file_path, "hello")

        assert doc.path == file_path.absolute()
        assert doc.filename == "Report.TXT"
        assert doc.extension == ".txt"
        assert doc.content == "hello"
        assert doc.modified_at.tzinfo is not None
        assert abs(doc.modified_at.timestamp() - file_path.stat().st_mtime) < 0.001

    def test_none_text_is_empty(self, tmp_path):
        """Test that missing text still yields a document."""
        file_path = tmp_path / "scan.pdf"
        file_path.write_bytes(b"")

        assert build_document(file_path, None).content == ""

    def test_missing_file_raises(self, tmp_path):
        """Test that a vanished file raises OSError."""
        with pytest.raises(FileNotFoundError):
            build_document(tmp_path / "gone.txt", "x")


class TestIndexer:
    """Test Indexer against a real store."""

    def test_index_directory(self, tmp_path, store: IndexStore):
        """Test indexing every supported file in a folder."""
        folder = tmp_path / "docs"
        folder.mkdir()
        (folder / "a.txt").write_text("meeting notes")
        (folder / "b.md").write_text("# invoice")
        (folder / "ignored.bin").write_bytes(b"\x00\x01")

        stats = Indexer(store).index([folder])

        assert stats.inserted == 2
        assert stats.failed == 0
        assert store.document_count() == 2
        assert store.get_document(folder / "b.md").content == "# invoice"

    def test_reindex_counts_updates(self, tmp_path, store: IndexStore):
        """Test that a second run reports updates and keeps one copy per path."""
        file_path = tmp_path / "a.txt"
        file_path.write_text("first")
        indexer = Indexer(store)

        indexer.index([file_path])
        file_path.write_text("second")
        stats = indexer.index([file_path])

        assert stats.updated == 1
        assert store.document_count() == 1
        assert store.get_document(file_path).content == "second"

    def test_empty_extraction_is_indexed(self, tmp_path, store: IndexStore):
        """Test that files without text are still indexed by metadata."""
        file_path = tmp_path / "blank.txt"
        file_path.write_text("")

        stats = Indexer(store).index([file_path])

        assert stats.inserted == 1
        assert stats.empty == 1
        assert store.contains(file_path)

    def test_per_file_failure_is_contained(self, tmp_path, store: IndexStore):
        """Test that one bad file does not stop the batch."""
        good = tmp_path / "good.txt"
        bad = tmp_path / "bad.txt"
        good.write_text("fine")
        bad.write_text("broken")

        def extractor(path):
            if path.name == "bad.txt":
                raise PermissionError("locked")
            return ExtractionResult(text="fine", ok=True)

        stats = Indexer(store, extractor=extractor).index([tmp_path])

        assert stats.inserted == 1
        assert stats.failed == 1
        assert bad in stats.processed_files
        assert store.contains(good)
        assert not store.contains(bad)

    def test_write_error_propagates(self, tmp_path, store: IndexStore):
        """Test that commit failures are not swallowed."""
        file_path = tmp_path / "a.txt"
        file_path.write_text("text")

        with patch.object(store, "commit", side_effect=IndexWriteError("disk full")):
            with pytest.raises(IndexWriteError):
                Indexer(store).index([file_path])

    def test_index_file(self, tmp_path, store: IndexStore):
        """Test indexing and committing a single file."""
        file_path = tmp_path / "a.txt"
        file_path.write_text("invoice")
        indexer = Indexer(store)

        assert indexer.index_file(file_path) == "inserted"
        assert indexer.index_file(file_path) == "updated"
        assert store.pending_count == 0

    def test_index_file_vanished(self, tmp_path, store: IndexStore):
        """Test that a file deleted before indexing is reported as failed."""
        extractor = Mock(return_value=ExtractionResult.empty())

        status = Indexer(store, extractor=extractor).index_file(tmp_path / "gone.txt")

        assert status == "failed"
        assert store.document_count() == 0

    def test_unreadable_file_keeps_existing_entry(self, tmp_path, store: IndexStore):
        """Test that a locked file does not overwrite what was indexed before."""
        file_path = tmp_path / "a.txt"
        file_path.write_text("invoice")
        Indexer(store).index_file(file_path)
        locked = Mock(return_value=ExtractionResult(text="", ok=False, readable=False))

        status = Indexer(store, extractor=locked).index_file(file_path)
        stats = Indexer(store, extractor=locked).index([file_path])

        assert status == "skipped"
        assert stats.skipped == 1
        assert stats.empty == 0
        assert store.get_document(file_path).content == "invoice"
