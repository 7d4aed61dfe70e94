"""Conversation state — shared across all graph nodes.

Per-request data (the text being edited, its page, the tool-result cache)
lives in a :class:`ToolContext` created fresh for every request and carried
inside the graph state, never on a long-lived object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TypedDict

from langchain_core.messages import AIMessage, BaseMessage


@dataclass
class ToolCallRecord:
    """Record of a single tool invocation.

    Attributes
    ----------
    name:
        Which tool was called (e.g. ``"get_document"``).
    arguments:
        The decoded arguments sent by the model.
    call_id:
        The model's id for this call.
    cached:
        ``True`` when the result came from the per-request cache.
    """

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    call_id: str = ""
    cached: bool = False


@dataclass
class ToolContext:
    """Request-scoped inputs and cache for tool execution.

    Attributes
    ----------
    current_text:
        The text the user is working on; used as the query for template
        and example retrieval.
    page_id:
        The wiki page being edited, if any.
    collection:
        Vector-store collection derived from *page_id*; ``None`` means the
        retriever's default.
    cache:
        Tool output keyed by a fingerprint of tool name and arguments.
    calls:
        Chronological log of every tool invocation.
    """

    current_text: str = ""
    page_id: str | None = None
    collection: str | None = None
    cache: dict[str, str] = field(default_factory=dict)
    calls: list[ToolCallRecord] = field(default_factory=list)


class ConversationState(TypedDict):
    """Typed state that flows through the tool-calling graph.

    Attributes
    ----------
    messages:
        The conversation so far, including tool round-trips.
    response:
        The assistant message from the most recent call, ``None`` before
        the first.
    context:
        The request's :class:`ToolContext`.
    use_tools:
        Whether tool calls in a response are honoured at all.
    tool_rounds:
        Number of completed tool-dispatch rounds.
    content:
        Final answer text, populated by the ``finish`` node.
    """

    messages: list[BaseMessage]
    response: AIMessage | None
    context: ToolContext
    use_tools: bool
    tool_rounds: int
    content: str
