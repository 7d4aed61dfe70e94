"""Graph nodes — each function is one step of the tool-calling loop.

Node contract
-------------
* Accepts the full :class:`ConversationState` dict.
* Returns a *partial* dict with **only the keys that changed**.
* External collaborators (chat client, tool set) are passed explicitly;
  :func:`wikillm.agent.graph.build_graph` binds them.
"""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.messages import AIMessage

from wikillm.agent.llm import ChatCompletionsClient, message_text, strip_think
from wikillm.agent.state import ConversationState
from wikillm.agent.tools import RetrievalTools
from wikillm.errors import UpstreamError

logger = logging.getLogger(__name__)


def requested_tool_calls(message: AIMessage) -> list[dict[str, Any]]:
    """Every tool call in *message*, including ones with unparseable arguments."""
    return [*message.tool_calls, *message.invalid_tool_calls]


# ── 1. CALL MODEL ─────────────────────────────────────────────────────


def call_model(
    state: ConversationState,
    chat: ChatCompletionsClient,
    definitions: list[dict[str, Any]],
) -> dict[str, Any]:
    """Send the conversation and store the assistant message.

    Tools are offered only before the first tool round, which bounds the
    conversation to one round of tool use.

    Raises
    ------
    UpstreamError
        The response has neither text nor tool calls the loop may run.
    """
    offer = definitions if state["use_tools"] and state["tool_rounds"] == 0 else None
    message = chat.complete(state["messages"], tools=offer)
    if not state["use_tools"] and requested_tool_calls(message) and not message_text(message):
        raise UpstreamError("Unexpected API response format")
    return {"response": message}


# ── 2. ROUTING ────────────────────────────────────────────────────────


def route_response(state: ConversationState) -> str:
    """Tool calls are dispatched whatever text comes with them; anything else finishes."""
    response = state["response"]
    if state["use_tools"] and response is not None and requested_tool_calls(response):
        return "dispatch_tools"
    return "finish"


# ── 3. DISPATCH TOOLS ─────────────────────────────────────────────────


def dispatch_tools(state: ConversationState, tools: RetrievalTools) -> dict[str, Any]:
    """Run every requested tool and append the results to the conversation.

    The assistant message is echoed back with its text emptied, followed
    by one ``tool`` message per call, in call order.
    """
    message = state["response"]
    calls = requested_tool_calls(message)
    messages = list(state["messages"])
    messages.append(message.model_copy(update={"content": ""}))
    messages.extend(tools.dispatch(call, state["context"]) for call in calls)

    rounds = state["tool_rounds"] + 1
    logger.info("Tool round %d: %d call(s)", rounds, len(calls))
    return {"messages": messages, "tool_rounds": rounds}


# ── 4. FINISH ─────────────────────────────────────────────────────────


def finish(state: ConversationState) -> dict[str, Any]:
    """Extract the answer text, minus any ``<think>`` region."""
    response = state["response"]
    return {"content": strip_think(message_text(response)) if response is not None else ""}
