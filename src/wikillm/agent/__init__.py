"""
Agent — prompt assembly and the tool-calling conversation loop.

Public API
----------
- :class:`AssistantService` — process text with a prompt template.
- :class:`ToolOrchestrator` / :func:`build_graph` — the LangGraph loop.
- :class:`ToolContext` — request-scoped state for tool execution.
"""

from wikillm.agent.graph import ToolOrchestrator, build_graph
from wikillm.agent.service import AssistantService
from wikillm.agent.state import ConversationState, ToolCallRecord, ToolContext

__all__ = [
    "AssistantService",
    "ConversationState",
    "ToolCallRecord",
    "ToolContext",
    "ToolOrchestrator",
    "build_graph",
]
