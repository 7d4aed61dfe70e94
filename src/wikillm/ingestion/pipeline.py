"""Incremental indexing of wiki pages into the vector store.

Each file goes through the same linear sequence: derive its id, check the
collection, compare its modification time with the stored ``processed_at``
of its first chunk, then read, chunk, embed and upsert.  Errors are caught
per file so a batch always runs to the end.

Usage::

    from wikillm.ingestion.pipeline import IngestionPipeline

    pipeline = IngestionPipeline()
    report = pipeline.process_directory("/var/www/html/dokuwiki/data/pages/reports/mri")
    print(report.processed, report.skipped, report.errors)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from wikillm.config import settings
from wikillm.errors import NotFoundError
from wikillm.ingestion.chunker import split_into_chunks
from wikillm.ingestion.identifier import collection_for, derive_metadata, page_path, parse_identifier
from wikillm.ingestion.loader import is_hidden_page, iter_document_files, read_document
from wikillm.retrieval.models import ChunkMetadata

if TYPE_CHECKING:
    from wikillm.ingestion.embedder import OllamaEmbedder
    from wikillm.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FileStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"


class FileOutcome(BaseModel):
    """Result of indexing one file."""

    path: str
    status: FileStatus
    message: str
    document_id: str | None = None
    collection: str | None = None
    chunk_count: int = 0


class BatchReport(BaseModel):
    """Per-file outcomes of a batch run, with aggregate counts."""

    source: str
    collection: str | None = None
    outcomes: list[FileOutcome] = Field(default_factory=list)

    def _count(self, status: FileStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def files_count(self) -> int:
        return len(self.outcomes)

    @property
    def processed(self) -> int:
        return self._count(FileStatus.SUCCESS)

    @property
    def skipped(self) -> int:
        return self._count(FileStatus.SKIPPED)

    @property
    def errors(self) -> int:
        return self._count(FileStatus.ERROR)


class IngestionPipeline:
    """Turns page files into embedded chunks in the vector store.

    Parameters
    ----------
    store:
        Vector-store backend.  Defaults to a
        :class:`~wikillm.retrieval.chroma_store.ChromaVectorStore`.
    embedder:
        Anything with an ``embed(text) -> list[float]`` method.  Defaults
        to an :class:`~wikillm.ingestion.embedder.OllamaEmbedder`.
    base_path:
        Pages directory stripped from file paths when deriving ids.
    extension:
        Page file suffix.
    root:
        Namespace prepended to derived ids.
    default_institution:
        Institution recorded for year-style report ids.
    clock:
        Returns the ``processed_at`` timestamp; injectable for tests.
    """

    def __init__(
        self,
        store: VectorStoreBase | None = None,
        embedder: OllamaEmbedder | None = None,
        *,
        base_path: str | Path | None = None,
        extension: str | None = None,
        root: str | None = None,
        default_institution: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if embedder is None:
            from wikillm.ingestion.embedder import OllamaEmbedder

            embedder = OllamaEmbedder()
        if store is None:
            from wikillm.retrieval.chroma_store import ChromaVectorStore

            store = ChromaVectorStore(embedder=embedder)
        self._store = store
        self._embedder = embedder
        self.base_path = Path(base_path if base_path is not None else settings.pages_dir)
        self.extension = extension if extension is not None else settings.document_extension
        self.root = root if root is not None else settings.root_namespace
        self.default_institution = (
            default_institution if default_institution is not None else settings.default_institution
        )
        self._clock = clock

    # -- identity -------------------------------------------------------------

    def document_id(self, path: str | Path) -> str:
        return parse_identifier(path, base_path=self.base_path, extension=self.extension, root=self.root)

    # -- single file ----------------------------------------------------------

    def process_file(
        self,
        path: str | Path,
        collection: str | None = None,
        *,
        collection_checked: bool = False,
    ) -> FileOutcome:
        """Index one page file.

        Parameters
        ----------
        path:
            The page file.
        collection:
            Target collection; derived from the document id when omitted.
        collection_checked:
            Skip the get-or-create call because the caller already made it.

        Returns
        -------
        FileOutcome
            ``success``, ``skipped`` (up to date, empty, or no chunks) or
            ``error`` with the exception message.  Never raises.
        """
        path = Path(path)
        document_id = self.document_id(path)
        collection = collection or collection_for(document_id)

        def outcome(status: FileStatus, message: str, chunk_count: int = 0) -> FileOutcome:
            return FileOutcome(
                path=str(path),
                status=status,
                message=message,
                document_id=document_id,
                collection=collection,
                chunk_count=chunk_count,
            )

        try:
            if not collection_checked:
                self._store.get_or_create_collection(collection)

            modified = path.stat().st_mtime
            if not self._store.needs_update(collection, [f"{document_id}@1"], modified):
                logger.info("Skipping %s: up to date in %r", document_id, collection)
                return outcome(FileStatus.SKIPPED, f"Document {document_id!r} is up to date in {collection!r}")

            content = read_document(path)
            if not content.strip():
                logger.info("Skipping %s: no content", document_id)
                return outcome(FileStatus.SKIPPED, f"Document {document_id!r} has no content")

            chunks = split_into_chunks(content)
            if not chunks:
                logger.info("Skipping %s: no valid chunks", document_id)
                return outcome(FileStatus.SKIPPED, f"No valid chunks found in {document_id!r}")

            base = derive_metadata(document_id, default_institution=self.default_institution)
            processed_at = self._clock()

            ids: list[str] = []
            documents: list[str] = []
            metadatas: list[dict] = []
            embeddings: list[list[float]] = []
            for chunk in chunks:
                chunk_id = f"{document_id}@{chunk.chunk_number}"
                metadata = ChunkMetadata(
                    document=base,
                    chunk_id=chunk_id,
                    chunk_number=chunk.chunk_number,
                    total_chunks=chunk.total_chunks,
                    tags=list(chunk.tags),
                    processed_at=processed_at,
                )
                logger.debug("Embedding %s", chunk_id)
                embeddings.append(self._embedder.embed(chunk.content))
                ids.append(chunk_id)
                documents.append(chunk.content)
                metadatas.append(metadata.to_store())

            # Chunks past len(chunks) from an earlier, longer version stay in the store.
            self._store.upsert(collection, ids, documents, metadatas, embeddings)
        except Exception as exc:
            logger.exception("Failed to index %s", path)
            return outcome(FileStatus.ERROR, f"Error indexing {path}: {exc}")

        logger.info("Indexed %s: %d chunks into %r", document_id, len(ids), collection)
        return outcome(FileStatus.SUCCESS, f"Indexed {document_id!r}", chunk_count=len(ids))

    # -- batches --------------------------------------------------------------

    def process_directory(self, directory: str | Path) -> BatchReport:
        """Index every page file below *directory*, continuing past failures.

        Raises
        ------
        NotFoundError
            *directory* does not exist.
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise NotFoundError(f"Directory does not exist: {directory}")

        files = list(iter_document_files(directory, self.extension))
        report = BatchReport(source=str(directory))
        if not files:
            logger.info("No %s files found in %s", self.extension, directory)
            return report

        collection = collection_for(self.document_id(files[0]))
        report.collection = collection
        try:
            self._store.get_or_create_collection(collection)
            checked = True
        except Exception:
            logger.warning("Could not ensure collection %r; checking per file", collection, exc_info=True)
            checked = False

        logger.info("Indexing %d files from %s into %r", len(files), directory, collection)
        for path in files:
            report.outcomes.append(self.process_file(path, collection, collection_checked=checked))

        logger.info(
            "Finished %s: %d processed, %d skipped, %d errors",
            directory,
            report.processed,
            report.skipped,
            report.errors,
        )
        return report

    def process_path(self, path: str | Path) -> BatchReport:
        """Index a directory or a single file; always returns a report.

        Raises
        ------
        NotFoundError
            *path* does not exist.
        """
        path = Path(path)
        if path.is_dir():
            return self.process_directory(path)
        if not path.is_file():
            raise NotFoundError(f"Path does not exist: {path}")

        report = BatchReport(source=str(path))
        if is_hidden_page(path):
            report.outcomes.append(
                FileOutcome(
                    path=str(path),
                    status=FileStatus.SKIPPED,
                    message=f"Skipping file starting with underscore: {path.name}",
                )
            )
            return report

        outcome = self.process_file(path)
        report.collection = outcome.collection
        report.outcomes.append(outcome)
        return report

    def process_page(self, page_id: str) -> FileOutcome:
        """Index the page file behind a wiki page id.

        Raises
        ------
        NotFoundError
            No file exists for *page_id*.
        """
        try:
            path = page_path(page_id, pages_dir=self.base_path, extension=self.extension)
        except ValueError as exc:
            raise NotFoundError(str(exc)) from exc
        if not path.is_file():
            raise NotFoundError(f"Page not found: {page_id}")
        return self.process_file(path)
