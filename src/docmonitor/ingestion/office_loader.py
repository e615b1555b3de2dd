"""Office Open XML text extraction (docx, pptx, xlsx)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List

from docx import Document
from openpyxl import load_workbook
from pptx import Presentation

LOGGER = logging.getLogger(__name__)

# Legacy binary formats are recognised but no reader is bundled for them.
LEGACY_EXTENSIONS = frozenset({".doc", ".xls", ".ppt"})


def _word_text(path: Path) -> str:
    document = Document(str(path))
    parts: List[str] = [paragraph.text for paragraph in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            parts.append(" ".join(cell.text for cell in row.cells if cell.text))
    return "\n".join(part for part in parts if part)


def _presentation_text(path: Path) -> str:
    presentation = Presentation(str(path))
    parts: List[str] = []
    for slide in presentation.slides:
        for shape in slide.shapes:
            if shape.has_text_frame and shape.text_frame.text:
                parts.append(shape.text_frame.text)
    return "\n".join(parts)


def _workbook_text(path: Path) -> str:
    workbook = load_workbook(path, read_only=True, data_only=True)
    try:
        lines: List[str] = []
        for sheet in workbook.worksheets:
            for row in sheet.iter_rows(values_only=True):
                cells = [str(value) for value in row if value is not None]
                if cells:
                    lines.append(" ".join(cells))
        return "\n".join(lines)
    finally:
        workbook.close()


_READERS: Dict[str, Callable[[Path], str]] = {
    ".docx": _word_text,
    ".pptx": _presentation_text,
    ".xlsx": _workbook_text,
}


def extract_office(path: Path) -> str:
    """Extract text from an Office document; returns ``""`` on any failure."""
    path = Path(path)
    extension = path.suffix.lower()
    reader = _READERS.get(extension)
    if reader is None:
        if extension in LEGACY_EXTENSIONS:
            LOGGER.info("Legacy Office format not supported, indexing metadata only: %s", path)
        return ""
    try:
        return reader(path)
    except Exception as exc:
        LOGGER.warning("Error extracting text from Office document %s: %s", path, exc)
        return ""
