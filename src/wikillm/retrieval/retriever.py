"""Report retriever — template and snippet lookup on top of a vector store.

Both the prompt assembler (placeholder filling) and the tool set (the
``get_template`` / ``get_examples`` tools) go through this class, and both
expect "nothing found" rather than an exception when the store misbehaves.

Usage::

    from wikillm.retrieval.retriever import ReportRetriever

    retriever = ReportRetriever()
    template_id = retriever.find_template("MRI brain, contrast ...")
    snippets    = retriever.find_snippets("MRI brain, contrast ...", k=10)
"""

from __future__ import annotations

import logging

from wikillm.config import settings
from wikillm.retrieval.base import VectorStoreBase
from wikillm.retrieval.models import MetadataFilter, QueryHit

logger = logging.getLogger(__name__)

TEMPLATE_FILTER = MetadataFilter.equals("type", "template")


class ReportRetriever:
    """High-level retriever that wraps any :class:`VectorStoreBase`.

    Parameters
    ----------
    store:
        A concrete vector-store backend.  When *None*, a default
        :class:`~wikillm.retrieval.chroma_store.ChromaVectorStore` is created
        from the global settings.
    collection:
        Collection searched when a call does not name one.  Defaults to the
        configured root namespace, which is where report pages are indexed.
    default_k:
        Default number of results returned by :meth:`search`.
    """

    def __init__(
        self,
        store: VectorStoreBase | None = None,
        *,
        collection: str | None = None,
        default_k: int = 5,
    ) -> None:
        if store is None:
            from wikillm.retrieval.chroma_store import ChromaVectorStore

            store = ChromaVectorStore()
        self._store = store
        self.collection = collection or settings.root_namespace
        self.default_k = default_k

    @property
    def store(self) -> VectorStoreBase:
        return self._store

    # -- public API -----------------------------------------------------------

    def search(
        self,
        query: str,
        *,
        k: int | None = None,
        filters: list[MetadataFilter] | None = None,
        collection: str | None = None,
    ) -> list[QueryHit]:
        """Run a semantic search; store failures yield an empty list.

        Parameters
        ----------
        query:
            Natural-language query string.
        k:
            Number of results (defaults to ``self.default_k``).
        filters:
            Optional metadata filters forwarded to the vector store.
        collection:
            Collection to search instead of ``self.collection``.
        """
        if not query or not query.strip():
            return []
        k = k or self.default_k
        target = collection or self.collection
        try:
            groups = self._store.query(target, [query], n_results=k, filters=filters)
        except Exception:
            logger.warning("Search in %r failed", target, exc_info=True)
            return []
        return groups[0] if groups else []

    def find_template(self, text: str, *, collection: str | None = None) -> str | None:
        """Return the id of the template page closest to *text*, or ``None``."""
        hits = self.search(text, k=1, filters=[TEMPLATE_FILTER], collection=collection)
        if not hits:
            return None
        return hits[0].document_id

    def find_snippets(self, text: str, k: int = 10, *, collection: str | None = None) -> list[str]:
        """Return the bodies of the *k* chunks closest to *text*."""
        return [hit.document for hit in self.search(text, k=k, collection=collection) if hit.document]
