"""
Retrieval — vector store access and template / snippet lookup.

This module wraps the vector store behind a clean interface so that the
agent and ingestion layers never need to know which DB is backing them.

Public surface
--------------
- :class:`ReportRetriever` — template and snippet lookup.
- :class:`VectorStoreBase` — abstract backend with the staleness check.
- :class:`ChromaVectorStore` — Chroma backend on the ``chromadb`` SDK.
- :class:`ChunkMetadata`, :class:`ReportMetadata`, :class:`TemplateMetadata`,
  :class:`MetadataFilter`, :class:`QueryHit`, :class:`GetResult` — data models.
"""

from wikillm.retrieval.base import VectorStoreBase
from wikillm.retrieval.models import (
    ChunkMetadata,
    GetResult,
    MetadataFilter,
    QueryHit,
    ReportMetadata,
    TemplateMetadata,
)
from wikillm.retrieval.retriever import ReportRetriever

__all__ = [
    "ChromaVectorStore",
    "ChunkMetadata",
    "GetResult",
    "MetadataFilter",
    "QueryHit",
    "ReportMetadata",
    "ReportRetriever",
    "TemplateMetadata",
    "VectorStoreBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to keep the ingestion import graph acyclic."""
    if name == "ChromaVectorStore":
        from wikillm.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
