"""Route a file to the text extractor for its extension."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict

from docmonitor.errors import handle_error
from docmonitor.ingestion.email_loader import extract_email
from docmonitor.ingestion.office_loader import extract_office
from docmonitor.ingestion.pdf_loader import extract_pdf
from docmonitor.models import ExtractionResult

LOGGER = logging.getLogger(__name__)


def read_plain_text(path: Path) -> str:
    """Read a text file as UTF-8, tolerating a BOM and undecodable bytes."""
    return Path(path).read_bytes().decode("utf-8-sig", errors="replace")


EXTRACTORS: Dict[str, Callable[[Path], str]] = {
    ".txt": read_plain_text,
    ".md": read_plain_text,
    ".pdf": extract_pdf,
    ".docx": extract_office,
    ".xlsx": extract_office,
    ".pptx": extract_office,
    ".doc": extract_office,
    ".xls": extract_office,
    ".ppt": extract_office,
    ".eml": extract_email,
}


def extract(path: Path) -> ExtractionResult:
    """Extract plain text from ``path``.

    Never raises: unsupported extensions and any extraction failure give an
    empty, not-ok result so the file's metadata can still be indexed. A file
    that cannot be opened at all gives ``readable=False``.
    """
    path = Path(path)
    extractor = EXTRACTORS.get(path.suffix.lower())
    if extractor is None:
        LOGGER.debug("No extractor for %s", path)
        return ExtractionResult.empty()
    try:
        # Format extractors swallow their own errors; check access up front.
        with path.open("rb"):
            pass
        text = extractor(path)
    except OSError as exc:
        handle_error(exc, path, context="extract")
        return ExtractionResult(text="", ok=False, readable=False)
    except Exception as exc:
        handle_error(exc, path, context="extract")
        return ExtractionResult.empty()
    return ExtractionResult(text=text or "", ok=bool(text))
