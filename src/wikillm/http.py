"""Single JSON round-trip over ``requests`` with error mapping.

Calls to the embeddings service go through :func:`request_json` so that
transport failures, HTTP errors and malformed bodies surface as the same
exception types the chat and vector-store clients map their SDK errors to.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from wikillm.errors import TransportError, UpstreamError, UpstreamHttpError

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


def request_json(
    session: requests.Session,
    method: str,
    url: str,
    *,
    payload: Any = None,
    headers: dict[str, str] | None = None,
    timeout: float = 30.0,
) -> Any:
    """Send one request and return the decoded JSON body.

    Raises
    ------
    TransportError
        The request never produced a response (connection error, timeout).
    UpstreamHttpError
        The response status is 400 or above.
    UpstreamError
        The body is not valid JSON.
    """
    merged = {**JSON_HEADERS, **(headers or {})}
    logger.debug("%s %s", method, url)
    try:
        response = session.request(method, url, json=payload, headers=merged, timeout=timeout)
    except requests.RequestException as exc:
        raise TransportError(f"{method} {url} failed: {exc}") from exc

    if response.status_code >= 400:
        raise UpstreamHttpError(response.status_code, response.text, url=url)

    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise UpstreamError(f"Invalid JSON from {url}: {response.text[:200]}") from exc
