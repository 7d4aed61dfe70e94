"""LangGraph graph definition — the tool-calling conversation loop.

This module wires the nodes defined in :mod:`wikillm.agent.nodes` into a
compiled :class:`StateGraph`:

1. **Call** the chat model (tools bound on the first call only).
2. **Route**: tool calls go on to dispatch; anything else ends the
   conversation.
3. **Dispatch** each tool call (with per-request caching) and append the
   results to the conversation.
4. **Loop** back to the model, this time without offering tools.

The graph can be tested locally by injecting a fake chat client (see
tests).
"""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.messages import convert_to_messages
from langgraph.errors import GraphRecursionError
from langgraph.graph import END, StateGraph

from wikillm.agent.llm import ChatCompletionsClient
from wikillm.agent.nodes import call_model, dispatch_tools, finish, route_response
from wikillm.agent.state import ConversationState, ToolContext
from wikillm.agent.tools import RetrievalTools
from wikillm.errors import UpstreamError

logger = logging.getLogger(__name__)

# Hard stop for models that keep emitting tool calls after tools are withdrawn.
RECURSION_LIMIT = 16


def build_graph(chat: ChatCompletionsClient, tools: RetrievalTools) -> Any:
    """Construct and return the compiled conversation graph.

    Graph topology::

        ┌─────────┐
        │  START   │
        └────┬─────┘
             ▼
      ┌──────────────┐
      │  call_model   │◄──────────────────┐
      └──────┬───────┘                    │
             │ tool_calls                 │
             ▼                            │
      ┌──────────────┐                    │
      │dispatch_tools ├───────────────────┘
      └──────────────┘
             │ no tool calls (from call_model)
             ▼
      ┌──────────────┐
      │    finish     │
      └──────┬───────┘
             ▼
          [ END ]

    Returns
    -------
    CompiledGraph
        A compiled LangGraph workflow ready for ``.invoke()``.
    """

    definitions = tools.definitions()

    def _call_model(state: ConversationState) -> dict[str, Any]:
        return call_model(state, chat, definitions)

    def _dispatch_tools(state: ConversationState) -> dict[str, Any]:
        return dispatch_tools(state, tools)

    workflow = StateGraph(ConversationState)

    # -- Nodes ---------------------------------------------------------------
    workflow.add_node("call_model", _call_model)
    workflow.add_node("dispatch_tools", _dispatch_tools)
    workflow.add_node("finish", finish)

    # -- Edges ---------------------------------------------------------------
    workflow.set_entry_point("call_model")
    workflow.add_conditional_edges(
        "call_model",
        route_response,
        {
            "dispatch_tools": "dispatch_tools",
            "finish": "finish",
        },
    )
    workflow.add_edge("dispatch_tools", "call_model")
    workflow.add_edge("finish", END)

    return workflow.compile()


class ToolOrchestrator:
    """Runs one conversation through the compiled graph.

    Parameters
    ----------
    chat:
        Chat client.
    tools:
        The retrieval tool set.
    recursion_limit:
        Maximum number of graph steps before giving up.
    """

    def __init__(
        self,
        chat: ChatCompletionsClient,
        tools: RetrievalTools,
        *,
        recursion_limit: int = RECURSION_LIMIT,
    ) -> None:
        self.recursion_limit = recursion_limit
        self._graph = build_graph(chat, tools)

    def run(
        self,
        messages: list[Any],
        *,
        context: ToolContext,
        use_tools: bool = False,
    ) -> str:
        """Send *messages* and return the model's final answer.

        *messages* are LangChain messages or ``{"role", "content"}`` dicts.

        Raises
        ------
        UpstreamError
            The chat endpoint failed, answered in an unexpected shape, or
            never stopped requesting tools.
        """
        state: ConversationState = {
            "messages": convert_to_messages(messages),
            "response": None,
            "context": context,
            "use_tools": use_tools,
            "tool_rounds": 0,
            "content": "",
        }
        try:
            result = self._graph.invoke(state, config={"recursion_limit": self.recursion_limit})
        except GraphRecursionError as exc:
            raise UpstreamError("Model kept requesting tools; giving up") from exc

        logger.info(
            "Conversation finished after %d tool round(s), %d tool call(s)",
            result["tool_rounds"],
            len(context.calls),
        )
        return result["content"]
