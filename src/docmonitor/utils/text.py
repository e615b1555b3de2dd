"""Text helpers: whitespace normalization and HTML reduction."""

from __future__ import annotations

from typing import Iterable

HTML_ENTITIES = {
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "quot": '"',
    "nbsp": " ",
}

# Longest entity body we accept between ``&`` and ``;``.
_MAX_ENTITY_LENGTH = 10

_SKIPPED_ELEMENTS = ("script", "style")


def normalize_whitespace(lines: Iterable[str]) -> str:
    """Collapse whitespace and join lines."""
    return "\n".join(line.strip() for line in lines if line.strip())


def _opens_element(html: str, start: int, name: str) -> bool:
    """Return True if ``html[start:]`` begins an opening tag for ``name``."""
    end = start + 1 + len(name)
    if html[start + 1 : end].lower() != name:
        return False
    return end >= len(html) or not html[end].isalnum()


def _entity_at(html: str, start: int) -> tuple[str, int] | None:
    """Decode the entity starting at ``html[start] == "&"``.

    Returns the replacement text and the index just past the ``;``, or None
    when the ampersand does not start a well-formed entity.
    """
    end = html.find(";", start + 1, start + 2 + _MAX_ENTITY_LENGTH)
    if end == -1:
        return None
    name = html[start + 1 : end]
    if not name or not (name.isalnum() or (name[0] == "#" and name[1:].isalnum())):
        return None
    return HTML_ENTITIES.get(name.lower() if name.isalpha() else name, " "), end + 1


def html_to_text(html: str) -> str:
    """Reduce an HTML fragment to plain text in one left-to-right pass.

    Tags are removed, a handful of entities decoded (other entities become a
    space), ``<script>``/``<style>`` contents dropped and whitespace collapsed.
    A ``<`` with no closing ``>`` and an ``&`` that does not start an entity
    are kept as literal text.
    """
    if not html:
        return ""

    out: list[str] = []
    pending_space = False
    i = 0
    length = len(html)

    def emit(chunk: str) -> None:
        nonlocal pending_space
        for char in chunk:
            if char.isspace():
                pending_space = True
                continue
            if pending_space and out:
                out.append(" ")
            pending_space = False
            out.append(char)

    while i < length:
        char = html[i]
        if char == "<":
            close = html.find(">", i + 1)
            if close == -1:
                emit(char)
                i += 1
                continue
            skipped = next((n for n in _SKIPPED_ELEMENTS if _opens_element(html, i, n)), None)
            if skipped is not None:
                end_tag = html.lower().find(f"</{skipped}", close + 1)
                if end_tag == -1:
                    break
                end_close = html.find(">", end_tag)
                i = length if end_close == -1 else end_close + 1
            else:
                i = close + 1
            pending_space = True
            continue
        if char == "&":
            decoded = _entity_at(html, i)
            if decoded is not None:
                text, i = decoded
                emit(text)
                continue
        emit(char)
        i += 1

    return "".join(out)
