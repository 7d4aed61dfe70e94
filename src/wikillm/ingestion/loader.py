"""Page loaders — discovery and reading of wiki page files."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

from wikillm.config import settings
from wikillm.ingestion.identifier import page_path

logger = logging.getLogger(__name__)


def is_hidden_page(path: str | Path) -> bool:
    """Files starting with ``_`` are wiki internals and never indexed."""
    return Path(path).name.startswith("_")


def iter_document_files(directory: str | Path, extension: str | None = None) -> Iterator[Path]:
    """Recursively yield page files below *directory*, in sorted order.

    Parameters
    ----------
    directory:
        Root directory containing page files.
    extension:
        Only files with this suffix are yielded.  Defaults to
        ``settings.document_extension``.
    """
    ext = extension if extension is not None else settings.document_extension
    for path in sorted(Path(directory).rglob(f"*{ext}")):
        if path.is_file() and not is_hidden_page(path):
            yield path


def read_document(path: str | Path) -> str:
    """Read a single page file as UTF-8."""
    return Path(path).read_text(encoding="utf-8", errors="replace")


class FilePageStore:
    """Read-only access to wiki pages by id.

    Parameters
    ----------
    pages_dir:
        Directory the page ids are relative to.
    extension:
        Page file suffix.
    """

    def __init__(self, pages_dir: str | Path | None = None, *, extension: str | None = None) -> None:
        self.pages_dir = Path(pages_dir if pages_dir is not None else settings.pages_dir)
        self.extension = extension if extension is not None else settings.document_extension

    def path(self, page_id: str) -> Path:
        return page_path(page_id, pages_dir=self.pages_dir, extension=self.extension)

    def read(self, page_id: str) -> str | None:
        """Return the page body, or ``None`` when the page does not exist."""
        if not page_id or not page_id.strip():
            return None
        try:
            path = self.path(page_id)
        except ValueError:
            return None
        if not path.is_file():
            logger.debug("Page %s not found at %s", page_id, path)
            return None
        return read_document(path)

    def modified(self, page_id: str) -> float | None:
        """Return the page file's modification time, or ``None``."""
        try:
            path = self.path(page_id)
        except ValueError:
            return None
        return path.stat().st_mtime if path.is_file() else None
