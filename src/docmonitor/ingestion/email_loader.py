"""Email (.eml) text extraction.

A message body is parsed into a small tagged tree and flattened recursively:

* :class:`TextLeaf`: a text/plain or text/html part
* :class:`Multipart`: a multipart container and its children
* :class:`NestedMessage`: an attached ``message/rfc822`` with its own headers

Attachments with a supported container format are extracted separately and
appended after an ``--- ATTACHMENTS ---`` marker, one labelled section each.
"""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from pathlib import Path
from typing import Callable, Dict, List, Tuple, Union

from docmonitor.ingestion.office_loader import extract_office
from docmonitor.ingestion.pdf_loader import extract_pdf
from docmonitor.utils.text import html_to_text

LOGGER = logging.getLogger(__name__)

ATTACHMENTS_MARKER = "--- ATTACHMENTS ---"
HEADER_NAMES = ("Subject", "From", "To", "Date")


@dataclass(frozen=True)
class TextLeaf:
    text: str
    is_html: bool = False


@dataclass(frozen=True)
class Multipart:
    children: Tuple["MimeNode", ...]


@dataclass(frozen=True)
class NestedMessage:
    headers: Tuple[Tuple[str, str], ...]
    body: "MimeNode"


MimeNode = Union[TextLeaf, Multipart, NestedMessage]

ATTACHMENT_EXTRACTORS: Dict[str, Callable[[Path], str]] = {
    ".pdf": extract_pdf,
    ".docx": extract_office,
    ".xlsx": extract_office,
    ".pptx": extract_office,
    ".doc": extract_office,
    ".xls": extract_office,
    ".ppt": extract_office,
}


def _headers(message: EmailMessage) -> Tuple[Tuple[str, str], ...]:
    return tuple(
        (name, str(message[name])) for name in HEADER_NAMES if message[name]
    )


def _part_text(part: EmailMessage) -> str:
    try:
        return part.get_content()
    except (LookupError, UnicodeError):
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")


def _is_body_part(part: EmailMessage) -> bool:
    return part.get_content_type() == "message/rfc822" or not part.is_attachment()


def parse_entity(part: EmailMessage) -> MimeNode:
    """Build the tagged tree for a message body, skipping attachments."""
    if part.get_content_type() == "message/rfc822":
        inner = part.get_payload(0)
        return NestedMessage(_headers(inner), parse_entity(inner))
    if part.is_multipart():
        return Multipart(
            tuple(parse_entity(child) for child in part.iter_parts() if _is_body_part(child))
        )
    if part.get_content_maintype() == "text" and not part.is_attachment():
        return TextLeaf(_part_text(part), is_html=part.get_content_subtype() == "html")
    return Multipart(())


def flatten(node: MimeNode) -> str:
    """Render a tagged tree to plain text."""
    if isinstance(node, TextLeaf):
        return html_to_text(node.text) if node.is_html else node.text.strip()
    if isinstance(node, Multipart):
        return "\n".join(text for text in (flatten(child) for child in node.children) if text)
    if isinstance(node, NestedMessage):
        lines = [f"{name}: {value}" for name, value in node.headers]
        body = flatten(node.body)
        if body:
            lines.append(body)
        return "\n".join(lines)
    raise TypeError(f"Unknown MIME node: {node!r}")


def _extract_attachments(message: EmailMessage) -> List[str]:
    sections: List[str] = []
    with tempfile.TemporaryDirectory(prefix="docmonitor-") as workdir:
        for part in message.walk():
            filename = part.get_filename()
            if not filename or part.is_multipart():
                continue
            name = Path(filename).name
            extractor = ATTACHMENT_EXTRACTORS.get(Path(name).suffix.lower())
            if extractor is None:
                continue
            try:
                target = Path(workdir) / name
                target.write_bytes(part.get_payload(decode=True) or b"")
                text = extractor(target)
            except OSError as exc:
                LOGGER.warning("Error processing attachment %s: %s", name, exc)
                continue
            if text.strip():
                sections.append(f"[Attachment: {name}]\n{text.strip()}")
    return sections


def extract_email(path: Path) -> str:
    """Extract headers, body and attachment text; returns ``""`` on failure."""
    try:
        with Path(path).open("rb") as handle:
            message = BytesParser(policy=policy.default).parse(handle)
        lines = [f"{name}: {value}" for name, value in _headers(message)]
        body = flatten(parse_entity(message))
        if body:
            lines.append(body)
        attachments = _extract_attachments(message)
        if attachments:
            lines.append(f"\n{ATTACHMENTS_MARKER}\n")
            lines.extend(attachments)
        return "\n".join(lines)
    except Exception as exc:
        LOGGER.warning("Error extracting text from email %s: %s", path, exc)
        return ""
