"""Watcher - keeps the index in step with the watched folders.

Uses watchdog for cross-platform file system monitoring. Create and modify
events are debounced per path, then handed to a single worker thread that
runs extract → build → upsert → commit to completion, one file at a time.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from docmonitor.errors import IndexCorruptedError, IndexOpenError, IndexWriteError
from docmonitor.service import IndexService
from docmonitor.utils.files import is_supported

LOGGER = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5


class MonitorState(Enum):
    IDLE = "idle"
    SCAN_TRIGGERED = "scan_triggered"
    EXTRACTING = "extracting"
    INDEXED = "indexed"


class _EventHandler(FileSystemEventHandler):
    def __init__(self, monitor: "ChangeMonitor") -> None:
        self.monitor = monitor

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.monitor.notify(Path(os.fsdecode(event.src_path)))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.monitor.notify(Path(os.fsdecode(event.src_path)))

    def on_moved(self, event: FileSystemEvent) -> None:
        # Editors often save by renaming a temp file over the target.
        if not event.is_directory:
            self.monitor.notify(Path(os.fsdecode(event.dest_path)))


class ChangeMonitor:
    """Initial scan plus live re-indexing of the watched roots."""

    def __init__(
        self,
        service: IndexService,
        roots: Sequence[Path],
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        on_fatal: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self.service = service
        self.roots: List[Path] = [Path(root).absolute() for root in roots]
        self.debounce_seconds = debounce_seconds
        self.on_fatal = on_fatal
        self.fatal_error: Optional[Exception] = None

        self._states: Dict[Path, MonitorState] = {root: MonitorState.IDLE for root in self.roots}
        self._timers: Dict[Path, threading.Timer] = {}
        self._lock = threading.Lock()
        self._queue: "queue.Queue[Optional[Path]]" = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self._observer = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def state(self, root: Path) -> MonitorState:
        return self._states[Path(root).absolute()]

    def start(self) -> None:
        """Scan every root, then start watching for changes."""
        for root in self.roots:
            self.scan(root)

        self._running = True
        self._worker = threading.Thread(target=self._run_worker, name="docmonitor-indexer", daemon=True)
        self._worker.start()

        self._observer = Observer()
        handler = _EventHandler(self)
        for root in self.roots:
            if root.is_dir():
                self._observer.schedule(handler, str(root), recursive=True)
                LOGGER.info("Watching: %s", root)
            else:
                LOGGER.warning("Watch root not found: %s", root)
        self._observer.start()
        LOGGER.info("File watcher started")

    def stop(self) -> None:
        """Stop watching; queued files are still indexed before this returns."""
        self._running = False
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

        if self._worker is not None:
            self._queue.put(None)
            self._worker.join()
            self._worker = None
        LOGGER.info("File watcher stopped")

    def scan(self, root: Path) -> None:
        """Index every supported file under ``root`` and commit once."""
        root = Path(root).absolute()
        self._set_state(root, MonitorState.SCAN_TRIGGERED)
        try:
            self._set_state(root, MonitorState.EXTRACTING)
            stats = self.service.index_paths([root])
            self._set_state(root, MonitorState.INDEXED)
            LOGGER.info(
                "Scanned %s: %d inserted, %d updated, %d skipped, %d failed",
                root,
                stats.inserted,
                stats.updated,
                stats.skipped,
                stats.failed,
            )
        finally:
            self._set_state(root, MonitorState.IDLE)

    def notify(self, path: Path) -> None:
        """Schedule ``path`` for re-indexing once events for it go quiet."""
        path = Path(path).absolute()
        if not is_supported(path) or not self._running:
            return
        timer = threading.Timer(self.debounce_seconds, self._enqueue, args=(path,))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(path, None)
            if previous is not None:
                previous.cancel()
            self._timers[path] = timer
        timer.start()

    def wait_idle(self, timeout: float = 5.0) -> bool:
        """Block until no debounce timer is pending and the queue is drained."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self._lock:
                pending = bool(self._timers)
            if not pending and self._queue.unfinished_tasks == 0:
                return True
            time.sleep(0.02)
        return False

    def process_path(self, path: Path) -> str:
        """Run the full indexing pipeline for one file.

        Returns the indexer status. A file that vanished or cannot be read
        (locked, permission denied) is ``"skipped"`` and its existing index
        entry is kept.
        """
        path = Path(path).absolute()
        if not path.is_file():
            LOGGER.warning("File disappeared before indexing, dropping event: %s", path)
            return "skipped"
        root = self._root_for(path)
        if root is not None:
            self._set_state(root, MonitorState.SCAN_TRIGGERED)
            self._set_state(root, MonitorState.EXTRACTING)
        try:
            status = self.service.index_file(path)
            if root is not None:
                self._set_state(root, MonitorState.INDEXED)
            return status
        finally:
            if root is not None:
                self._set_state(root, MonitorState.IDLE)

    def _enqueue(self, path: Path) -> None:
        with self._lock:
            # A timer superseded by a newer event for the same path is dropped.
            if self._timers.get(path) is not threading.current_thread():
                return
            self._queue.put(path)
            del self._timers[path]

    def _run_worker(self) -> None:
        while True:
            path = self._queue.get()
            try:
                if path is None:
                    return
                self._handle(path)
            finally:
                self._queue.task_done()

    def _handle(self, path: Path) -> None:
        try:
            self.process_path(path)
        except (IndexCorruptedError, IndexOpenError) as exc:
            LOGGER.critical("Index storage failed, stopping monitor: %s", exc)
            self.fatal_error = exc
            self._running = False
            if self.on_fatal is not None:
                self.on_fatal(exc)
        except IndexWriteError as exc:
            LOGGER.error("Could not index %s: %s", path, exc)
        except Exception:
            LOGGER.exception("Unexpected error while indexing %s", path)

    def _root_for(self, path: Path) -> Optional[Path]:
        for root in self.roots:
            if path == root or root in path.parents:
                return root
        return None

    def _set_state(self, root: Path, state: MonitorState) -> None:
        LOGGER.debug("%s: %s", root, state.value)
        self._states[root] = state
