"""LLM initialisation — single place that talks to the model server.

Any OpenAI-compatible endpoint works (OpenAI, vLLM, llama.cpp server,
Ollama's compatibility layer): ``ChatOpenAI`` only needs the base URL in
front of ``/chat/completions``.  Sampling parameters the OpenAI API does
not define (``top_k``, ``min_p``) travel in ``extra_body``.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import openai
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_openai import ChatOpenAI

from wikillm.config import settings
from wikillm.errors import TransportError, UpstreamError, UpstreamHttpError

logger = logging.getLogger(__name__)

_THINK = re.compile(r"<think>.*?</think>", re.DOTALL)

# Sent as regular OpenAI parameters; everything else goes in extra_body.
_OPENAI_SAMPLING = ("temperature", "top_p")


def strip_think(content: str) -> str:
    """Remove ``<think>...</think>`` reasoning regions and surrounding blanks."""
    return _THINK.sub("", content).strip()


def message_text(message: BaseMessage) -> str:
    """Plain text of *message*, joining text blocks of list content."""
    content = message.content
    if isinstance(content, str):
        return content
    parts = [
        block if isinstance(block, str) else str(block.get("text", ""))
        for block in content
        if isinstance(block, str) or block.get("type") == "text"
    ]
    return "".join(parts)


def get_llm(
    *,
    base_url: str | None = None,
    api_key: str | None = None,
    model: str | None = None,
    max_tokens: int | None = None,
    sampling: dict[str, float | int | None] | None = None,
    timeout: float | None = None,
    http_client: Any = None,
) -> ChatOpenAI:
    """Return the configured chat model.

    Sampling values default to the settings; any that end up ``None`` are
    left out of the request.  A placeholder API key (``"EMPTY"``) is used
    when none is configured because self-hosted servers do not require
    one and LangChain requires a non-empty value.
    """
    params: dict[str, float | int | None] = {
        "temperature": settings.temperature,
        "top_p": settings.top_p,
        "top_k": settings.top_k,
        "min_p": settings.min_p,
    }
    if sampling:
        params.update(sampling)

    key = api_key if api_key is not None else settings.llm_api_key
    kwargs: dict = {
        "model": model or settings.llm_model,
        "base_url": base_url or settings.llm_base_url,
        "api_key": key or "EMPTY",
        "max_tokens": max_tokens or settings.llm_max_tokens,
        "timeout": timeout if timeout is not None else settings.http_timeout,
        "max_retries": 0,
    }
    extra_body = {}
    for name, value in params.items():
        if value is None:
            continue
        if name in _OPENAI_SAMPLING:
            kwargs[name] = value
        else:
            extra_body[name] = value
    if extra_body:
        kwargs["extra_body"] = extra_body
    if http_client is not None:
        kwargs["http_client"] = http_client

    logger.info("Using chat model %s at %s", kwargs["model"], kwargs["base_url"])
    return ChatOpenAI(**kwargs)


class ChatCompletionsClient:
    """One chat-completions round-trip, with or without a tool offer.

    Parameters
    ----------
    chat_model:
        A ready LangChain chat model.  When omitted one is built with
        :func:`get_llm` from *options*.
    **options:
        Passed through to :func:`get_llm`.
    """

    def __init__(self, chat_model: BaseChatModel | None = None, **options: Any) -> None:
        self.model = chat_model if chat_model is not None else get_llm(**options)

    def complete(
        self,
        messages: list[BaseMessage],
        *,
        tools: list[dict[str, Any]] | None = None,
    ) -> AIMessage:
        """Send *messages* and return the assistant message.

        *tools* are offered with ``tool_choice="auto"`` and parallel tool
        calls disabled; without them the unbound model is called.

        Raises
        ------
        TransportError, UpstreamHttpError
            The call itself failed.
        UpstreamError
            The response did not carry an assistant message.
        """
        runnable = (
            self.model.bind_tools(tools, tool_choice="auto", parallel_tool_calls=False)
            if tools
            else self.model
        )
        try:
            message = runnable.invoke(messages)
        except openai.APIConnectionError as exc:
            raise TransportError(str(exc)) from exc
        except openai.APIStatusError as exc:
            raise UpstreamHttpError(exc.status_code, exc.response.text, str(exc.request.url)) from exc
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise UpstreamError("Unexpected API response format") from exc

        if not isinstance(message, AIMessage):
            raise UpstreamError("Unexpected API response format")
        logger.debug(
            "Chat response: content=%s tool_calls=%d",
            bool(message.content),
            len(message.tool_calls) + len(message.invalid_tool_calls),
        )
        return message
