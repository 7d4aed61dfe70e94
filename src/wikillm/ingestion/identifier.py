"""Document identifiers and the metadata encoded in them.

Wiki pages live on disk as ``<pages_dir>/reports/mri/2024/g287-jane-doe.txt``
and are addressed as ``reports:mri:2024:g287-jane-doe``.  The segments of
that identifier carry structured information:

* ``reports:mri:medima:250620-ivan-aisha`` — third segment is an
  institution, last segment starts with a ``DDMMYY`` date.
* ``reports:mri:2024:g287-jane-doe`` — third segment is a year, last
  segment may start with a registration number.
* ``reports:mri:templates:jane-doe`` — any ``templates`` segment marks a
  template page.

Everything here is a pure function of its inputs (and, for relative paths,
the working directory) and never raises.
"""

from __future__ import annotations

import logging
import os
import re
from datetime import date
from pathlib import Path

from wikillm.config import settings
from wikillm.retrieval.models import ReportMetadata, TemplateMetadata

logger = logging.getLogger(__name__)

TEMPLATE_SEGMENT = "templates"

_SEPARATORS = re.compile(r"[\\/]+")
_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:")
_DATED_NAME = re.compile(r"^(\d{6})-(.+)$")
_REGISTERED_NAME = re.compile(r"^([a-zA-Z0-9]+)-(.+)$")
_DDMMYY = re.compile(r"(\d{2})(\d{2})(\d{2})")

# Two-digit years up to this value belong to the 2000s, the rest to the 1900s.
CENTURY_PIVOT = 70


def parse_identifier(
    source: str | Path,
    *,
    base_path: str | Path | None = None,
    extension: str | None = None,
    root: str | None = None,
) -> str:
    """Convert a file path (or an existing id) into a colon-joined document id.

    Parameters
    ----------
    source:
        A filesystem path, usually below *base_path*, or an id that is
        already colon-delimited.
    base_path:
        Prefix stripped from *source*.  Defaults to ``settings.pages_dir``.
    extension:
        File extension stripped from the last segment.  Defaults to
        ``settings.document_extension``.
    root:
        Namespace prepended to the id unless it is already the first
        segment.  Defaults to ``settings.root_namespace``.

    Returns
    -------
    str
        The document id.  Malformed input produces a best-effort id,
        possibly a single segment.
    """
    base = str(base_path if base_path is not None else settings.pages_dir)
    ext = extension if extension is not None else settings.document_extension
    root = root if root is not None else settings.root_namespace

    text = str(source).strip()
    if ":" in text and not _SEPARATORS.search(text):
        return ":".join(part for part in text.split(":") if part)

    relative = _strip_base(text, base)
    if relative is None and base and (_is_relative(text) or _is_relative(base)):
        # Relative paths are matched after resolving both sides.
        try:
            relative = _strip_base(os.path.realpath(text), os.path.realpath(base))
        except (OSError, ValueError):
            relative = None
    if relative is not None:
        text = relative
    if ext and text.endswith(ext):
        text = text[: -len(ext)]

    parts = [part for part in _SEPARATORS.split(text) if part]
    if root and (not parts or parts[0] != root):
        parts.insert(0, root)
    return ":".join(parts)


def _strip_base(text: str, base: str) -> str | None:
    base = base.rstrip("/\\")
    if base and (text == base or text.startswith((base + "/", base + "\\"))):
        return text[len(base):]
    return None


def _is_relative(text: str) -> bool:
    return bool(text) and not text.startswith(("/", "\\")) and not _WINDOWS_DRIVE.match(text)


def page_path(page_id: str, *, pages_dir: str | Path | None = None, extension: str | None = None) -> Path:
    """Map a page id back to its file below *pages_dir*."""
    base = Path(pages_dir if pages_dir is not None else settings.pages_dir)
    ext = extension if extension is not None else settings.document_extension
    parts = [part for part in page_id.split(":") if part]
    if not parts:
        raise ValueError(f"Empty page id: {page_id!r}")
    if any(part in (".", "..") or _SEPARATORS.search(part) for part in parts):
        raise ValueError(f"Invalid page id: {page_id!r}")
    return base.joinpath(*parts[:-1], parts[-1] + ext)


def collection_for(document_id: str, default: str | None = None) -> str:
    """Return the collection a document belongs to: its first id segment."""
    first = document_id.split(":", 1)[0].strip()
    return first or (default if default is not None else settings.chroma_collection)


def decode_ddmmyy(token: str) -> str | None:
    """Turn ``250620`` into ``2025-06-20``; ``None`` when not a real date."""
    match = _DDMMYY.fullmatch(token)
    if match is None:
        return None
    day, month, year = (int(group) for group in match.groups())
    full_year = 2000 + year if year <= CENTURY_PIVOT else 1900 + year
    try:
        return date(full_year, month, day).isoformat()
    except ValueError:
        logger.debug("Ignoring impossible date token %r", token)
        return None


def page_date(page_id: str) -> str | None:
    """Find the first ``DDMMYY`` run anywhere in *page_id* and decode it."""
    for match in re.finditer(r"\d{6}", page_id):
        decoded = decode_ddmmyy(match.group(0))
        if decoded:
            return decoded
    return None


def _humanize(segment: str) -> str:
    return segment.replace("-", " ")


def _split_registration(segment: str) -> tuple[str | None, str]:
    match = _REGISTERED_NAME.match(segment)
    if match and any(ch.isdigit() for ch in match.group(1)):
        return match.group(1), _humanize(match.group(2))
    return None, _humanize(segment)


def derive_metadata(
    document_id: str,
    *,
    default_institution: str | None = None,
) -> ReportMetadata | TemplateMetadata:
    """Extract the structured fields encoded in *document_id*."""
    institution_default = (
        default_institution if default_institution is not None else settings.default_institution
    )
    parts = document_id.split(":")
    last = parts[-1]
    modality = parts[1] if len(parts) > 1 and parts[1] else None

    if TEMPLATE_SEGMENT in parts:
        registration, name = _split_registration(last)
        return TemplateMetadata(
            document_id=document_id,
            modality=modality,
            registration=registration,
            name=name,
        )

    meta = ReportMetadata(document_id=document_id, modality=modality)
    if len(parts) < 3:
        return meta

    third = parts[2]
    if third.isdigit():
        meta.year = third
        meta.institution = institution_default
        meta.registration, meta.name = _split_registration(last)
    else:
        meta.institution = third
        match = _DATED_NAME.match(last)
        if match:
            meta.date = decode_ddmmyy(match.group(1))
            meta.name = _humanize(match.group(2))
    return meta
