"""Exception hierarchy and per-file error policies.

Failures below the index-write level are contained per file: they are logged
according to :data:`ERROR_POLICIES` and the caller moves on. Index write and
open failures propagate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

LOGGER = logging.getLogger(__name__)


class DocMonitorError(Exception):
    """Base exception for DocMonitor."""


class ConfigError(DocMonitorError):
    """Configuration file could not be read."""


class ExtractionError(DocMonitorError):
    """A format extractor could not produce text for a file."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot extract text from {path}: {reason}")


class QuerySyntaxError(DocMonitorError):
    """Malformed query text."""

    def __init__(self, message: str, position: Optional[int] = None) -> None:
        self.message = message
        self.position = position
        if position is not None:
            message = f"{message} (at position {position})"
        super().__init__(message)


class IndexOpenError(DocMonitorError):
    """The index store could not be opened."""


class IndexWriteError(DocMonitorError):
    """Pending index mutations could not be committed.

    The pending operations are retained, so ``commit()`` may be retried.
    """


class IndexCorruptedError(IndexWriteError):
    """The underlying storage is unrecoverable."""


@dataclass(frozen=True)
class ErrorPolicy:
    log_level: int
    message_template: str


ERROR_POLICIES: dict[type, ErrorPolicy] = {
    FileNotFoundError: ErrorPolicy(logging.WARNING, "File not found (possibly deleted): {file}"),
    PermissionError: ErrorPolicy(logging.WARNING, "Permission denied (file locked?): {file}"),
    IsADirectoryError: ErrorPolicy(logging.DEBUG, "Expected file, got directory: {file}"),
    UnicodeDecodeError: ErrorPolicy(logging.WARNING, "Cannot decode file: {file} - {error}"),
    OSError: ErrorPolicy(logging.WARNING, "OS error reading file: {file} - {error}"),
    ExtractionError: ErrorPolicy(logging.WARNING, "Extraction failed: {file} - {error}"),
}


def handle_error(error: Exception, file_path: Optional[Path] = None, context: str = "") -> None:
    """Log a contained per-file failure according to its policy."""
    policy = None
    for error_type, candidate in ERROR_POLICIES.items():
        if isinstance(error, error_type):
            policy = candidate
            break
    if policy is None:
        policy = ErrorPolicy(logging.ERROR, "Unexpected error: {file} - {error}")

    file_str = str(file_path) if file_path else "<unknown>"
    message = policy.message_template.format(file=file_str, error=str(error))
    if context:
        message = f"[{context}] {message}"
    LOGGER.log(policy.log_level, message)
