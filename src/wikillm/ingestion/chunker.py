"""Paragraph chunking for wiki pages.

A page is split at blank lines.  Headings (``== Title ==``) are not stored
as chunks; their words become tags attached to every following paragraph
until the next heading.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_BLANK_LINES = re.compile(r"\n\s*\n")
_HEADING = re.compile(r"^=+(.*?)=+$")

MIN_TAG_LENGTH = 4


@dataclass(frozen=True)
class TextChunk:
    """One paragraph of a page, ready for embedding."""

    content: str
    chunk_number: int
    total_chunks: int
    tags: tuple[str, ...] = ()


def heading_tags(title: str) -> tuple[str, ...]:
    """Lowercased, de-duplicated words of at least ``MIN_TAG_LENGTH`` chars."""
    seen: dict[str, None] = {}
    for word in title.split():
        if len(word) >= MIN_TAG_LENGTH:
            seen.setdefault(word.lower(), None)
    return tuple(seen)


def split_into_chunks(text: str) -> list[TextChunk]:
    """Split *text* into numbered paragraph chunks.

    Parameters
    ----------
    text:
        Raw page text.

    Returns
    -------
    list[TextChunk]
        Non-empty, non-heading paragraphs numbered from 1, each carrying the
        tags of the closest preceding heading.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    pending: list[tuple[str, tuple[str, ...]]] = []
    tags: tuple[str, ...] = ()
    for segment in _BLANK_LINES.split(text):
        segment = segment.strip()
        if not segment:
            continue
        heading = _HEADING.match(segment)
        if heading:
            tags = heading_tags(heading.group(1).strip())
            continue
        pending.append((segment, tags))

    total = len(pending)
    return [
        TextChunk(content=content, chunk_number=number, total_chunks=total, tags=chunk_tags)
        for number, (content, chunk_tags) in enumerate(pending, start=1)
    ]
