"""Retrieval tools the chat model may call while answering.

Tools are LangChain ``StructuredTool`` objects built per request so they
can close over the request's :class:`~wikillm.agent.state.ToolContext`.
Their OpenAI-style definitions are derived from the same objects.

Tool failures never escape :meth:`RetrievalTools.dispatch`: they become the
tool's output text so the conversation can continue.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

from langchain_core.messages import ToolMessage
from langchain_core.tools import StructuredTool
from langchain_core.utils.function_calling import convert_to_openai_tool
from pydantic import BaseModel, Field

from wikillm.agent.sources import ReportSources
from wikillm.agent.state import ToolCallRecord, ToolContext

logger = logging.getLogger(__name__)

MAX_EXAMPLES = 20


# ---------------------------------------------------------------------------
# Argument schemas
# ---------------------------------------------------------------------------


class GetDocumentArgs(BaseModel):
    id: str = Field(
        description=(
            "The unique identifier of the document to retrieve, e.g. "
            "'reports:mri:2024:g287-jane-doe'."
        )
    )


class GetTemplateArgs(BaseModel):
    language: str = Field(
        default="",
        description="Optional language or report type hint for the template.",
    )


class GetExamplesArgs(BaseModel):
    count: int = Field(
        default=5,
        description=(
            "The number of examples to retrieve (1-20). Use more examples when you need "
            "comprehensive reference material, fewer for a quick reminder of the style."
        ),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def fingerprint(name: str, arguments: dict[str, Any]) -> str:
    """Cache key for a tool call: independent of call id and key order."""
    raw = json.dumps([name, arguments], sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _decode_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Undecodable tool arguments: %r", raw)
        return {}
    return decoded if isinstance(decoded, dict) else {}


# ---------------------------------------------------------------------------
# Tool set
# ---------------------------------------------------------------------------


class RetrievalTools:
    """The fixed tool set: ``get_document``, ``get_template``, ``get_examples``.

    Parameters
    ----------
    sources:
        Where page bodies, templates and snippets come from.
    """

    def __init__(self, sources: ReportSources) -> None:
        self._sources = sources

    def build(self, context: ToolContext) -> dict[str, StructuredTool]:
        """Return the tools bound to *context*, keyed by name."""
        sources = self._sources

        def get_document(id: str) -> str:  # noqa: A002
            body = sources.page(id)
            return body if body is not None else f"Document not found: {id}"

        def get_template(language: str = "") -> str:
            return sources.template_content(context.current_text, collection=context.collection)

        def get_examples(count: int = 5) -> str:
            count = max(1, min(int(count), MAX_EXAMPLES))
            snippets = sources.snippets(context.current_text, count, collection=context.collection)
            return f"<examples>\n{snippets}\n</examples>"

        tools = [
            StructuredTool.from_function(
                func=get_document,
                name="get_document",
                description=(
                    "Retrieve the full content of a specific document by providing its unique "
                    "document ID. Use this when you need the complete text of a particular "
                    "document for reference or analysis."
                ),
                args_schema=GetDocumentArgs,
            ),
            StructuredTool.from_function(
                func=get_template,
                name="get_template",
                description=(
                    "Retrieve a relevant template document that matches the current text. "
                    "Use this when you need a structural template to base your response on, "
                    "particularly for consistent reports."
                ),
                args_schema=GetTemplateArgs,
            ),
            StructuredTool.from_function(
                func=get_examples,
                name="get_examples",
                description=(
                    "Retrieve example snippets from previous reports that are similar to the "
                    "current text. Use this to keep style, terminology and structure consistent."
                ),
                args_schema=GetExamplesArgs,
            ),
        ]
        return {tool.name: tool for tool in tools}

    def definitions(self) -> list[dict[str, Any]]:
        """OpenAI ``tools`` array describing every tool."""
        return [convert_to_openai_tool(tool) for tool in self.build(ToolContext()).values()]

    def dispatch(self, call: dict[str, Any], context: ToolContext) -> ToolMessage:
        """Execute one model tool call and return the ``tool`` message for it.

        *call* is a LangChain tool call (``name``, ``args``, ``id``); ``args``
        may still be a JSON string for calls LangChain could not parse.

        Results are cached in ``context.cache`` by name and arguments, so a
        repeated identical call is answered without touching any backend.
        """
        name = call.get("name") or ""
        arguments = _decode_arguments(call.get("args"))
        call_id = call.get("id") or ""

        key = fingerprint(name, arguments)
        cached = key in context.cache
        if cached:
            logger.debug("Tool %s%s served from cache", name, arguments)
            content = context.cache[key]
        else:
            content = self._execute(name, arguments, context)
            context.cache[key] = content

        context.calls.append(ToolCallRecord(name=name, arguments=arguments, call_id=call_id, cached=cached))
        return ToolMessage(content=content, tool_call_id=call_id)

    def _execute(self, name: str, arguments: dict[str, Any], context: ToolContext) -> str:
        tool = self.build(context).get(name)
        if tool is None:
            logger.warning("Model requested unknown tool %r", name)
            return f"Unknown tool: {name}"
        logger.info("Running tool %s with %s", name, arguments)
        try:
            return str(tool.invoke(arguments))
        except Exception as exc:
            logger.warning("Tool %s failed", name, exc_info=True)
            return f"Tool {name} failed: {exc}"
