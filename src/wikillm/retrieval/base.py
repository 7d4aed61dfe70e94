"""Abstract base class for vector-store backends.

The ingestion pipeline and the retrieval helpers only talk to
:class:`VectorStoreBase`; the Chroma store is one implementation and
the unit tests provide an in-memory one.  Staleness detection is written
once here on top of :meth:`VectorStoreBase.get`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from wikillm.retrieval.models import GetResult, MetadataFilter, QueryHit

logger = logging.getLogger(__name__)


def parse_processed_at(value: Any) -> datetime | None:
    """Decode a stored ``processed_at`` value into an aware UTC datetime.

    Accepts ISO-8601 strings and POSIX timestamps.  Naive values are taken
    as local time.  Returns ``None`` for anything undecodable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed.astimezone(timezone.utc)


class VectorStoreBase(ABC):
    """Backend-agnostic vector-store interface.

    Collections are addressed by name.  Implementations resolve names to
    whatever internal handle the backend uses.
    """

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def list_collections(self) -> list[dict[str, Any]]:
        """Return every collection in the current tenant/database scope."""
        ...

    @abstractmethod
    def get_collection(self, name: str | None = None) -> dict[str, Any] | None:
        """Return the collection called *name*, or ``None`` when absent."""
        ...

    @abstractmethod
    def get_or_create_collection(self, name: str | None = None) -> dict[str, Any]:
        """Return the collection called *name*, creating it if needed."""
        ...

    @abstractmethod
    def upsert(
        self,
        collection: str,
        ids: list[str],
        documents: list[str],
        metadatas: list[dict[str, Any]],
        embeddings: list[list[float]],
    ) -> None:
        """Insert or replace records by id.  All four lists are parallel."""
        ...

    @abstractmethod
    def query(
        self,
        collection: str,
        query_texts: list[str],
        *,
        n_results: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[list[QueryHit]]:
        """Embed each query text and return ranked hits grouped per text."""
        ...

    @abstractmethod
    def get(
        self,
        collection: str,
        ids: list[str],
        *,
        include: list[str] | None = None,
        limit: int | None = None,
    ) -> GetResult:
        """Fetch records by id."""
        ...

    @abstractmethod
    def heartbeat(self) -> dict[str, Any]:
        """Return the backend's liveness payload."""
        ...

    # -- optional overrides ---------------------------------------------------

    def get_identity(self) -> dict[str, Any]:
        """Return the caller identity as seen by the backend."""
        raise NotImplementedError(f"{type(self).__name__} does not expose an identity")

    def delete_collection(self, name: str) -> None:
        """Delete a collection by name.  Optional — raises by default."""
        raise NotImplementedError(f"{type(self).__name__} does not support delete")

    # -- shared behaviour -----------------------------------------------------

    def get_document_by_id(self, collection: str, document_id: str) -> GetResult:
        """Fetch one record with its document body and metadata."""
        return self.get(collection, [document_id], include=["documents", "metadatas"])

    def needs_update(
        self,
        collection: str,
        document_ids: list[str],
        file_modified_time: float | datetime,
    ) -> bool:
        """Return ``True`` when the stored records are missing or older than the file.

        Any failure while talking to the store is treated as "needs update":
        re-indexing is idempotent, silently serving a stale index is not.

        Parameters
        ----------
        collection:
            Collection holding the records.
        document_ids:
            Chunk ids to look up (the pipeline passes ``{document_id}@1``).
        file_modified_time:
            The source file's modification time, as a POSIX timestamp or a
            datetime.
        """
        if isinstance(file_modified_time, datetime):
            modified = file_modified_time
            if modified.tzinfo is None:
                modified = modified.astimezone()
        else:
            modified = datetime.fromtimestamp(file_modified_time, tz=timezone.utc)

        try:
            result = self.get(collection, document_ids, include=["metadatas"], limit=1)
        except Exception:
            logger.warning(
                "Staleness check failed for %s in %r; scheduling re-index",
                document_ids,
                collection,
                exc_info=True,
            )
            return True

        if not result.ids:
            return True

        for metadata in result.metadatas or []:
            processed_at = parse_processed_at((metadata or {}).get("processed_at"))
            if processed_at is None or processed_at < modified:
                return True
        return False
