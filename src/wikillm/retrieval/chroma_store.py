"""Chroma implementation of the vector-store abstraction."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import chromadb
import httpx
from chromadb.config import Settings as ChromaSettings
from chromadb.errors import ChromaError
from chromadb.errors import NotFoundError as ChromaNotFoundError
from chromadb.errors import UniqueConstraintError

from wikillm.config import settings
from wikillm.errors import NotFoundError, TransportError, UpstreamError, ValidationError
from wikillm.ingestion.embedder import OllamaEmbedder
from wikillm.retrieval.base import VectorStoreBase
from wikillm.retrieval.models import GetResult, MetadataFilter, QueryHit

logger = logging.getLogger(__name__)

_OP_MAP = {
    "eq": "$eq",
    "ne": "$ne",
    "gt": "$gt",
    "gte": "$gte",
    "lt": "$lt",
    "lte": "$lte",
    "in": "$in",
    "nin": "$nin",
}


def _build_chroma_where(filters: list[MetadataFilter]) -> dict[str, Any] | None:
    """Convert a list of :class:`MetadataFilter` to Chroma ``where`` syntax."""
    if not filters:
        return None

    clauses: list[dict[str, Any]] = []
    for f in filters:
        chroma_op = _OP_MAP.get(f.operator)
        if chroma_op is None:
            raise ValueError(f"Unsupported filter operator: {f.operator!r}")
        clauses.append({f.field: {chroma_op: f.value}})

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


@contextmanager
def _chroma_errors(action: str) -> Iterator[None]:
    """Re-raise SDK and transport failures as package errors."""
    try:
        yield
    except ChromaNotFoundError as exc:
        raise NotFoundError(f"{action}: {exc}") from exc
    except ChromaError as exc:
        raise UpstreamError(f"{action}: {exc}") from exc
    except httpx.TransportError as exc:
        raise TransportError(f"{action}: {exc}") from exc


def _describe(collection: Any) -> dict[str, Any]:
    return {"id": str(collection.id), "name": collection.name}


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store scoped to one tenant and database.

    The tenant and database are created on construction if missing; a
    failure there propagates and the store is not usable.

    Parameters
    ----------
    host, port:
        Chroma server address.
    tenant, database:
        Multi-tenancy scope for every collection operation.
    default_collection:
        Collection used when a caller passes an empty name.
    embedder:
        Used by :meth:`query` to turn query texts into vectors.
    client, admin:
        Pre-built ``chromadb.HttpClient`` / ``chromadb.AdminClient``.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        *,
        tenant: str | None = None,
        database: str | None = None,
        default_collection: str | None = None,
        embedder: OllamaEmbedder | None = None,
        client: Any = None,
        admin: Any = None,
    ) -> None:
        self.host = host or settings.chroma_host
        self.port = port or settings.chroma_port
        self.tenant = tenant or settings.chroma_tenant
        self.database = database or settings.chroma_database
        self.default_collection = default_collection or settings.chroma_collection
        self._embedder = embedder or OllamaEmbedder()

        self._admin = admin if admin is not None else chromadb.AdminClient(
            ChromaSettings(
                chroma_api_impl="chromadb.api.fastapi.FastAPI",
                chroma_server_host=self.host,
                chroma_server_http_port=self.port,
            )
        )
        self.ensure_tenant_and_database()

        if client is not None:
            self._client = client
        else:
            try:
                with _chroma_errors(f"Connecting to Chroma at {self.host}:{self.port}"):
                    self._client = chromadb.HttpClient(
                        host=self.host,
                        port=self.port,
                        tenant=self.tenant,
                        database=self.database,
                    )
            except ValueError as exc:
                # The SDK reports an unreachable server or scope as ValueError.
                raise UpstreamError(str(exc)) from exc

    def _collection(self, name: str | None) -> Any:
        name = name or self.default_collection
        with _chroma_errors(f"Collection {name!r} not found"):
            return self._client.get_collection(name, embedding_function=None)

    # -- tenancy --------------------------------------------------------------

    def ensure_tenant_and_database(self) -> None:
        """Get-or-create the tenant, then the database inside it."""
        with _chroma_errors(f"Preparing tenant {self.tenant!r}"):
            try:
                self._admin.get_tenant(self.tenant)
            except ChromaError:
                logger.info("Creating tenant %r", self.tenant)
                try:
                    self._admin.create_tenant(self.tenant)
                except UniqueConstraintError:
                    logger.debug("Tenant %r already exists", self.tenant)

        with _chroma_errors(f"Preparing database {self.database!r}"):
            try:
                self._admin.get_database(self.database, tenant=self.tenant)
            except ChromaError:
                logger.info("Creating database %r in tenant %r", self.database, self.tenant)
                try:
                    self._admin.create_database(self.database, tenant=self.tenant)
                except UniqueConstraintError:
                    logger.debug("Database %r already exists", self.database)

    # -- collections ----------------------------------------------------------

    def list_collections(self) -> list[dict[str, Any]]:
        with _chroma_errors("Listing collections"):
            return [_describe(collection) for collection in self._client.list_collections()]

    def get_collection(self, name: str | None = None) -> dict[str, Any] | None:
        try:
            return _describe(self._collection(name))
        except NotFoundError:
            return None

    def get_or_create_collection(self, name: str | None = None) -> dict[str, Any]:
        name = name or self.default_collection
        with _chroma_errors(f"Creating collection {name!r}"):
            collection = self._client.get_or_create_collection(name, embedding_function=None)
        logger.info("Collection %r ready", name)
        return _describe(collection)

    def delete_collection(self, name: str) -> None:
        with _chroma_errors(f"Collection {name!r} not found"):
            self._client.delete_collection(name)
        logger.info("Deleted collection %r", name)

    # -- records --------------------------------------------------------------

    def upsert(
        self,
        collection: str,
        ids: list[str],
        documents: list[str],
        metadatas: list[dict[str, Any]],
        embeddings: list[list[float]],
    ) -> None:
        if not (len(ids) == len(documents) == len(metadatas) == len(embeddings)):
            raise ValidationError(
                "upsert needs parallel lists of equal length: "
                f"ids={len(ids)} documents={len(documents)} "
                f"metadatas={len(metadatas)} embeddings={len(embeddings)}"
            )
        target = self._collection(collection)
        with _chroma_errors(f"Upserting into {collection!r}"):
            target.upsert(ids=ids, embeddings=embeddings, metadatas=metadatas, documents=documents)
        logger.debug("Upserted %d records into %r", len(ids), collection)

    def query(
        self,
        collection: str,
        query_texts: list[str],
        *,
        n_results: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[list[QueryHit]]:
        target = self._collection(collection)
        where = _build_chroma_where(filters) if filters else None
        with _chroma_errors(f"Querying {collection!r}"):
            results = target.query(
                query_embeddings=[self._embedder.embed(text) for text in query_texts],
                n_results=n_results,
                where=where,
                include=["documents", "metadatas", "distances"],
            )

        grouped: list[list[QueryHit]] = []
        all_ids = results.get("ids") or []
        all_docs = results.get("documents") or [[] for _ in all_ids]
        all_metas = results.get("metadatas") or [[] for _ in all_ids]
        all_dists = results.get("distances") or [[] for _ in all_ids]
        for group, ids in enumerate(all_ids):
            docs = all_docs[group] or []
            metas = all_metas[group] or []
            dists = all_dists[group] or []
            hits = []
            for index, doc_id in enumerate(ids):
                hits.append(
                    QueryHit(
                        id=doc_id,
                        document=(docs[index] if index < len(docs) else None) or "",
                        distance=dists[index] if index < len(dists) else None,
                        metadata=dict((metas[index] if index < len(metas) else None) or {}),
                    )
                )
            grouped.append(hits)
        return grouped

    def get(
        self,
        collection: str,
        ids: list[str],
        *,
        include: list[str] | None = None,
        limit: int | None = None,
    ) -> GetResult:
        target = self._collection(collection)
        with _chroma_errors(f"Fetching from {collection!r}"):
            result = target.get(ids=ids, include=include or ["metadatas", "documents"], limit=limit)
        metadatas = result.get("metadatas")
        return GetResult(
            ids=list(result.get("ids") or []),
            documents=result.get("documents"),
            metadatas=[dict(meta) if meta else meta for meta in metadatas] if metadatas is not None else None,
        )

    # -- server ---------------------------------------------------------------

    def heartbeat(self) -> dict[str, Any]:
        with _chroma_errors("Heartbeat"):
            return {"nanosecond heartbeat": self._client.heartbeat()}

    def get_identity(self) -> dict[str, Any]:
        with _chroma_errors("Fetching identity"):
            identity = self._client.get_user_identity()
        return dict(vars(identity))
