"""Command-line front-end for indexing and inspecting the vector store.

Usage::

    wikillm send /var/www/html/dokuwiki/data/pages/reports/mri
    wikillm query "contrast enhancement" -c reports -l 3
    wikillm heartbeat
    wikillm get reports:mri:2024:g287-jane-doe@1 -c reports
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence

from wikillm.config import settings
from wikillm.errors import WikiLLMError
from wikillm.ingestion.embedder import OllamaEmbedder
from wikillm.ingestion.pipeline import BatchReport, FileStatus, IngestionPipeline
from wikillm.retrieval.chroma_store import ChromaVectorStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wikillm", description="Wiki page indexer for the Chroma vector store.")
    parser.add_argument("--host", default=settings.chroma_host, help="Chroma server host")
    parser.add_argument("--port", type=int, default=settings.chroma_port, help="Chroma server port")
    parser.add_argument("--tenant", default=settings.chroma_tenant, help="Chroma tenant")
    parser.add_argument("--database", default=settings.chroma_database, help="Chroma database")
    parser.add_argument("--ollama-host", default=settings.ollama_host, help="Ollama server host")
    parser.add_argument("--ollama-port", type=int, default=settings.ollama_port, help="Ollama server port")
    parser.add_argument("--ollama-model", default=settings.ollama_embeddings_model, help="Embeddings model")
    parser.add_argument("-c", "--collection", default=None, help="Collection for query and get")
    parser.add_argument("-l", "--limit", type=int, default=5, help="Number of query results to return")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")

    commands = parser.add_subparsers(dest="command", required=True)

    send = commands.add_parser("send", help="Send a file or directory to the vector store")
    send.add_argument("path", help="File or directory path")

    query = commands.add_parser("query", help="Query a collection")
    query.add_argument("search", help="Search terms")
    # Repeated after the subcommand; SUPPRESS keeps the global value unless given here.
    query.add_argument("-c", "--collection", default=argparse.SUPPRESS, help="Collection to query")
    query.add_argument("-l", "--limit", type=int, default=argparse.SUPPRESS, help="Number of results to return")

    commands.add_parser("heartbeat", help="Check that the server is alive")
    commands.add_parser("identity", help="Show authentication and identity information")
    commands.add_parser("list", help="List all collections")

    get = commands.add_parser("get", help="Get a document by its id")
    get.add_argument("id", help="Document id")
    get.add_argument("-c", "--collection", default=argparse.SUPPRESS, help="Collection name")

    return parser


def _make_embedder(args: argparse.Namespace) -> OllamaEmbedder:
    return OllamaEmbedder(f"http://{args.ollama_host}:{args.ollama_port}", model=args.ollama_model)


def _make_client(args: argparse.Namespace, embedder: OllamaEmbedder | None = None) -> ChromaVectorStore:
    return ChromaVectorStore(
        args.host,
        args.port,
        tenant=args.tenant,
        database=args.database,
        embedder=embedder or _make_embedder(args),
    )


def _print_report(report: BatchReport, verbose: bool) -> None:
    for outcome in report.outcomes:
        if outcome.status is FileStatus.SUCCESS:
            print(f"Indexed {outcome.document_id} ({outcome.chunk_count} chunks) into {outcome.collection}")
        elif outcome.status is FileStatus.ERROR:
            print(outcome.message, file=sys.stderr)
        elif verbose:
            print(outcome.message)
    if report.files_count > 1 or verbose:
        print("Processing summary:")
        print(f"  Processed: {report.processed} files")
        print(f"  Skipped: {report.skipped} files")
        print(f"  Errors: {report.errors} files")


def _send(args: argparse.Namespace) -> int:
    embedder = _make_embedder(args)
    client = _make_client(args, embedder)
    pipeline = IngestionPipeline(client, embedder)
    report = pipeline.process_path(args.path)
    _print_report(report, args.verbose)
    return 1 if report.errors else 0


def _query(args: argparse.Namespace) -> int:
    client = _make_client(args)
    collection = args.collection or settings.chroma_collection
    groups = client.query(collection, [args.search], n_results=args.limit)
    hits = groups[0] if groups else []
    print(f'Query results for: "{args.search}" in {collection}')
    if not hits:
        print("No results found.")
        return 0
    for rank, hit in enumerate(hits, start=1):
        print(f"Result {rank}:")
        print(f"  ID: {hit.id}")
        print(f"  Distance: {hit.distance}")
        print(f"  Document: {hit.document[:255]}...")
        if hit.metadata:
            print(f"  Metadata: {json.dumps(hit.metadata, ensure_ascii=False)}")
        print()
    return 0


def _get(args: argparse.Namespace) -> int:
    client = _make_client(args)
    collection = args.collection or args.id.split(":", 1)[0]
    result = client.get_document_by_id(collection, args.id)
    if not result.ids:
        print(f"No document found with id: {args.id}", file=sys.stderr)
        return 1
    for index, doc_id in enumerate(result.ids):
        print(f"ID: {doc_id}")
        if result.documents and index < len(result.documents):
            print(f"Document: {result.documents[index]}")
        if result.metadatas and index < len(result.metadatas):
            print(f"Metadata: {json.dumps(result.metadatas[index], ensure_ascii=False)}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the ``wikillm`` console script."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "send":
            return _send(args)
        if args.command == "query":
            return _query(args)
        if args.command == "get":
            return _get(args)

        client = _make_client(args)
        if args.command == "heartbeat":
            beat = client.heartbeat()
            print("Server is alive!")
            print(f"Response: {json.dumps(beat)}")
        elif args.command == "identity":
            print(json.dumps(client.get_identity(), indent=2))
        elif args.command == "list":
            collections = client.list_collections()
            if not collections:
                print("No collections found.")
            for collection in collections:
                print(f"{collection.get('name')} ({collection.get('id')})")
        return 0
    except WikiLLMError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
