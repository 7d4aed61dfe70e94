"""Domain models for document metadata, store filters and store results."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

_CHUNK_SUFFIX = re.compile(r"@\d+$")


def strip_chunk_suffix(chunk_id: str) -> str:
    """``reports:mri:x@3`` → ``reports:mri:x``."""
    return _CHUNK_SUFFIX.sub("", chunk_id)


class MetadataFilter(BaseModel):
    """Declarative metadata filter for vector-store queries.

    Attributes
    ----------
    field:
        The metadata key to filter on (e.g. ``"type"``, ``"institution"``).
    operator:
        Comparison operator — one of ``eq``, ``ne``, ``gt``, ``gte``,
        ``lt``, ``lte``, ``in``, ``nin``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    # -- helpers for common filters ------------------------------------------

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def not_equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="ne", value=value)

    @classmethod
    def one_of(cls, field: str, values: list[Any]) -> MetadataFilter:
        return cls(field=field, operator="in", value=values)


# ---------------------------------------------------------------------------
# Document metadata
# ---------------------------------------------------------------------------


class DocumentMetadata(BaseModel):
    """Fields shared by every kind of document."""

    document_id: str
    modality: str | None = None
    registration: str | None = None
    name: str | None = None


class ReportMetadata(DocumentMetadata):
    """A report page: either ``{institution, date}`` or ``{year, institution}``."""

    type: Literal["report"] = "report"
    institution: str | None = None
    date: str | None = None
    year: str | None = None


class TemplateMetadata(DocumentMetadata):
    """A page living below a ``templates`` namespace."""

    type: Literal["template"] = "template"


AnyDocumentMetadata = Annotated[ReportMetadata | TemplateMetadata, Field(discriminator="type")]


class ChunkMetadata(BaseModel):
    """Metadata stored alongside one embedded chunk.

    The document-level fields are kept in :attr:`document`; :meth:`to_store`
    flattens everything into the scalar-only mapping the vector store accepts.
    """

    document: AnyDocumentMetadata
    chunk_id: str
    chunk_number: int
    total_chunks: int
    tags: list[str] = Field(default_factory=list)
    processed_at: datetime

    def to_store(self) -> dict[str, str | int | float | bool]:
        flat: dict[str, str | int | float | bool] = self.document.model_dump(exclude_none=True)
        flat["chunk_id"] = self.chunk_id
        flat["chunk_number"] = self.chunk_number
        flat["total_chunks"] = self.total_chunks
        flat["processed_at"] = self.processed_at.isoformat()
        if self.tags:
            flat["tags"] = ",".join(self.tags)
        return flat


# ---------------------------------------------------------------------------
# Store results
# ---------------------------------------------------------------------------


class QueryHit(BaseModel):
    """One ranked match returned by a similarity query."""

    id: str
    document: str = ""
    distance: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def document_id(self) -> str:
        return strip_chunk_suffix(self.id)


class GetResult(BaseModel):
    """Records fetched by id; parallel lists as returned by the store."""

    model_config = ConfigDict(extra="ignore")

    ids: list[str] = Field(default_factory=list)
    documents: list[str | None] | None = None
    metadatas: list[dict[str, Any] | None] | None = None

    def __len__(self) -> int:
        return len(self.ids)
