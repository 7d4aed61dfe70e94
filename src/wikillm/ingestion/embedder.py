"""Text → vector conversion through an Ollama embeddings endpoint."""

from __future__ import annotations

import logging

import requests

from wikillm.config import settings
from wikillm.errors import UpstreamError, ValidationError
from wikillm.http import request_json

logger = logging.getLogger(__name__)


class OllamaEmbedder:
    """Thin client for ``POST /api/embeddings``.

    One call per text, no internal retry: callers decide what to do when
    the service is down.

    Parameters
    ----------
    base_url:
        Scheme, host and port of the Ollama server.
    model:
        Embedding model name.
    keep_alive:
        How long the server should keep the model loaded between calls.
    timeout:
        Per-request timeout in seconds.
    session:
        Optional pre-configured ``requests.Session``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        model: str | None = None,
        keep_alive: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = (base_url or settings.ollama_url).rstrip("/")
        self.model = model or settings.ollama_embeddings_model
        self.keep_alive = keep_alive or settings.ollama_keep_alive
        self.timeout = timeout if timeout is not None else settings.http_timeout
        self._session = session or requests.Session()

    def embed(self, text: str) -> list[float]:
        """Return the embedding vector for *text*.

        Raises
        ------
        ValidationError
            *text* is empty.
        UpstreamError
            The call failed or the response has no ``embedding`` field.
        """
        if not text or not text.strip():
            raise ValidationError("Cannot embed empty text")

        body = request_json(
            self._session,
            "POST",
            f"{self.base_url}/api/embeddings",
            payload={"model": self.model, "prompt": text, "keep_alive": self.keep_alive},
            timeout=self.timeout,
        )
        embedding = body.get("embedding") if isinstance(body, dict) else None
        if not embedding:
            raise UpstreamError(f"No embedding in response from {self.base_url}")
        logger.debug("Embedded %d chars into %d dimensions", len(text), len(embedding))
        return [float(value) for value in embedding]

    __call__ = embed
