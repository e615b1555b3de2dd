"""Core DocMonitor data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

MODIFIED_FORMAT = "%Y%m%d%H%M%S"


def truncate_to_millis(value: datetime) -> datetime:
    """Normalize a timestamp to UTC with millisecond resolution."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def format_modified(value: datetime) -> str:
    """Encode a timestamp as ``YYYYMMDDHHMMSSmmm`` (UTC)."""
    value = truncate_to_millis(value)
    return f"{value.strftime(MODIFIED_FORMAT)}{value.microsecond // 1000:03d}"


def parse_modified(value: str) -> datetime:
    """Decode a timestamp produced by :func:`format_modified`."""
    if len(value) != 17 or not value.isdigit():
        raise ValueError(f"Invalid modified timestamp: {value!r}")
    parsed = datetime.strptime(value[:14], MODIFIED_FORMAT)
    return parsed.replace(microsecond=int(value[14:]) * 1000, tzinfo=timezone.utc)


@dataclass(slots=True)
class IndexedDocument:
    """One indexed file, keyed by its absolute path."""

    path: Path
    filename: str
    extension: str
    modified_at: datetime
    content: str = ""

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        self.extension = self.extension.lower()
        self.modified_at = truncate_to_millis(self.modified_at)
        if self.content is None:
            self.content = ""

    @property
    def modified(self) -> str:
        return format_modified(self.modified_at)


@dataclass(slots=True)
class ScoredResult:
    """A ranked search hit."""

    path: Path
    filename: str
    extension: str
    modified_at: datetime
    score: float


@dataclass(slots=True)
class ExtractionResult:
    """Outcome of routing a file through the extraction dispatcher.

    ``readable`` is False when the file itself could not be read (locked,
    vanished, permission denied), as opposed to a format it could not parse.
    """

    text: str
    ok: bool
    readable: bool = True

    @classmethod
    def empty(cls) -> "ExtractionResult":
        return cls(text="", ok=False)
