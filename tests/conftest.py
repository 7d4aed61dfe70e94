"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import json
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

import httpx
import pytest

from wikillm.retrieval.base import VectorStoreBase
from wikillm.retrieval.models import GetResult, MetadataFilter, QueryHit


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── HTTP fakes ──────────────────────────────────────────────────────────


class FakeResponse:
    """Just enough of ``requests.Response`` for :func:`wikillm.http.request_json`."""

    def __init__(self, status_code: int = 200, body: Any = None, text: str | None = None) -> None:
        self.status_code = status_code
        if text is None:
            text = json.dumps(body) if body is not None else ""
        self.text = text
        self.content = text.encode("utf-8")

    def json(self) -> Any:
        return json.loads(self.text)


class FakeSession:
    """Records every request and answers through *handler*.

    The handler receives ``(method, url, payload)`` and returns a
    :class:`FakeResponse`, a JSON-able body (wrapped with status 200), or
    an exception instance to raise.
    """

    def __init__(self, handler: Callable[[str, str, Any], Any]) -> None:
        self.handler = handler
        self.calls: list[SimpleNamespace] = []

    def request(self, method: str, url: str, json: Any = None, headers: Any = None, timeout: Any = None) -> Any:  # noqa: A002
        self.calls.append(SimpleNamespace(method=method, url=url, json=json, headers=headers, timeout=timeout))
        result = self.handler(method, url, json)
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, FakeResponse):
            return result
        return FakeResponse(200, result)


@pytest.fixture()
def make_session() -> Callable[[Callable[[str, str, Any], Any]], FakeSession]:
    return FakeSession


@pytest.fixture()
def make_response() -> type[FakeResponse]:
    return FakeResponse


# ── Chat model server fake ──────────────────────────────────────────────


class FakeLLMServer:
    """Scripted OpenAI-compatible endpoint served through ``httpx.MockTransport``.

    Answers with *bodies* in order, repeating the last one.  A body may be
    a JSON-able dict, an ``httpx.Response``, or an exception to raise.
    """

    def __init__(self, *bodies: Any) -> None:
        self.bodies = list(bodies)
        self.calls: list[SimpleNamespace] = []

    @staticmethod
    def completion(content: str | None, tool_calls: list[dict[str, Any]] | None = None) -> dict[str, Any]:
        message: dict[str, Any] = {"role": "assistant", "content": content}
        if tool_calls is not None:
            message["tool_calls"] = tool_calls
        return {
            "id": "chatcmpl-test",
            "object": "chat.completion",
            "created": 0,
            "model": "test-model",
            "choices": [
                {"index": 0, "message": message, "finish_reason": "tool_calls" if tool_calls else "stop"}
            ],
        }

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(
            SimpleNamespace(url=str(request.url), headers=request.headers, json=json.loads(request.content))
        )
        body = self.bodies.pop(0) if len(self.bodies) > 1 else self.bodies[0]
        if isinstance(body, BaseException):
            raise body
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, json=body)

    def http_client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handle))


@pytest.fixture()
def llm_server() -> type[FakeLLMServer]:
    return FakeLLMServer


# ── Vector store / embedder fakes ───────────────────────────────────────


class FakeEmbedder:
    """Deterministic embedder: vector derived from the text length."""

    def __init__(self) -> None:
        self.texts: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.texts.append(text)
        return [float(len(text)), 1.0, 0.0]


class InMemoryVectorStore(VectorStoreBase):
    """Dict-backed store; queries return every matching record in id order."""

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.create_calls: list[str] = []
        self.upsert_calls: list[dict[str, Any]] = []
        self.query_calls: list[dict[str, Any]] = []
        self.fail_get = False
        self.fail_query = False

    def list_collections(self) -> list[dict[str, Any]]:
        return [{"id": f"id-{name}", "name": name} for name in self.collections]

    def get_collection(self, name: str | None = None) -> dict[str, Any] | None:
        name = name or "documents"
        if name not in self.collections:
            return None
        return {"id": f"id-{name}", "name": name}

    def get_or_create_collection(self, name: str | None = None) -> dict[str, Any]:
        name = name or "documents"
        self.create_calls.append(name)
        self.collections.setdefault(name, {})
        return {"id": f"id-{name}", "name": name}

    def upsert(
        self,
        collection: str,
        ids: list[str],
        documents: list[str],
        metadatas: list[dict[str, Any]],
        embeddings: list[list[float]],
    ) -> None:
        self.upsert_calls.append({"collection": collection, "ids": list(ids)})
        records = self.collections.setdefault(collection, {})
        for record_id, document, metadata, embedding in zip(ids, documents, metadatas, embeddings):
            records[record_id] = {"document": document, "metadata": dict(metadata), "embedding": embedding}

    def _matches(self, metadata: dict[str, Any], filters: list[MetadataFilter] | None) -> bool:
        return all(metadata.get(f.field) == f.value for f in filters or [] if f.operator == "eq")

    def query(
        self,
        collection: str,
        query_texts: list[str],
        *,
        n_results: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[list[QueryHit]]:
        self.query_calls.append({"collection": collection, "texts": list(query_texts), "filters": filters})
        if self.fail_query:
            raise RuntimeError("query failed")
        records = self.collections.get(collection, {})
        hits = [
            QueryHit(id=record_id, document=record["document"], distance=0.0, metadata=record["metadata"])
            for record_id, record in sorted(records.items())
            if self._matches(record["metadata"], filters)
        ]
        return [hits[:n_results] for _ in query_texts]

    def get(
        self,
        collection: str,
        ids: list[str],
        *,
        include: list[str] | None = None,
        limit: int | None = None,
    ) -> GetResult:
        if self.fail_get:
            raise RuntimeError("store unavailable")
        records = self.collections.get(collection, {})
        found = [record_id for record_id in ids if record_id in records]
        if limit is not None:
            found = found[:limit]
        return GetResult(
            ids=found,
            documents=[records[record_id]["document"] for record_id in found],
            metadatas=[records[record_id]["metadata"] for record_id in found],
        )

    def heartbeat(self) -> dict[str, Any]:
        return {"nanosecond heartbeat": 1}


@pytest.fixture()
def memory_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture()
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()
