"""Exception hierarchy shared by every layer of the package."""

from __future__ import annotations


class WikiLLMError(Exception):
    """Base class for all errors raised by this package."""


class UpstreamError(WikiLLMError):
    """An external service (embeddings, chat, vector store) call failed."""


class TransportError(UpstreamError):
    """Connection-level failure: refused, reset, DNS, or timeout."""


class UpstreamHttpError(UpstreamError):
    """The upstream service answered with a status code >= 400."""

    def __init__(self, status: int, body: str, url: str = "") -> None:
        self.status = status
        self.body = body
        self.url = url
        where = f" from {url}" if url else ""
        super().__init__(f"HTTP {status}{where}: {body[:500]}")


class NotFoundError(WikiLLMError):
    """A tenant, database, collection or document is absent."""


class TemplateNotFoundError(NotFoundError):
    """A prompt template exists neither in the requested nor the default language."""


class ValidationError(WikiLLMError):
    """Required input is missing or malformed at a public boundary."""
