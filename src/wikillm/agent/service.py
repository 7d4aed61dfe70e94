"""Assistant service — the entry point front-ends call to process text.

Wires the page store, retriever, prompt assembler and tool orchestrator
together and creates a fresh :class:`ToolContext` for every request.

Usage::

    from wikillm.agent.service import AssistantService

    service = AssistantService()
    print(service.process("grammar", "Teh patient presents ...", page_id="reports:mri:2024:g287-jane-doe"))
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from wikillm.agent.graph import ToolOrchestrator
from wikillm.agent.llm import ChatCompletionsClient
from wikillm.agent.prompts import PromptAssembler, PromptLibrary
from wikillm.agent.sources import ReportSources
from wikillm.agent.state import ToolContext
from wikillm.agent.tools import RetrievalTools
from wikillm.config import settings
from wikillm.errors import NotFoundError, ValidationError
from wikillm.ingestion.identifier import collection_for
from wikillm.ingestion.loader import FilePageStore
from wikillm.retrieval.retriever import ReportRetriever

logger = logging.getLogger(__name__)

# Metadata keys naming pages, exposed to templates as ``page_<key>``.
PAGE_REFERENCES = ("template", "examples", "previous")


class AssistantService:
    """Process wiki text with the chat model.

    Parameters
    ----------
    pages:
        Page store; defaults to the configured pages directory.
    retriever:
        Vector-store retriever; ``None`` with ``use_context=False`` means
        no vector store is contacted at all.
    chat:
        Chat-completions client.
    library:
        Prompt template library.
    use_tools:
        Offer the retrieval tools to the model.
    use_context:
        Prepend the ``<context>`` block and enable retrieval lookups.
    think:
        Exposed to templates as ``{think}`` (``/think`` or ``/no_think``).
    """

    def __init__(
        self,
        *,
        pages: FilePageStore | None = None,
        retriever: ReportRetriever | None = None,
        chat: ChatCompletionsClient | None = None,
        library: PromptLibrary | None = None,
        use_tools: bool | None = None,
        use_context: bool | None = None,
        think: bool | None = None,
    ) -> None:
        self.use_tools = settings.use_tools if use_tools is None else use_tools
        self.use_context = settings.use_context if use_context is None else use_context
        self.think = settings.think if think is None else think

        self.pages = pages or FilePageStore()
        if retriever is None and (self.use_context or self.use_tools):
            retriever = ReportRetriever()
        self.retriever = retriever
        self.sources = ReportSources(self.pages, retriever)
        self.assembler = PromptAssembler(library or PromptLibrary(), self.sources)
        self.tools = RetrievalTools(self.sources)
        self.orchestrator = ToolOrchestrator(chat or ChatCompletionsClient(), self.tools)

    # -- public API -----------------------------------------------------------

    def new_context(self, text: str, page_id: str | None = None) -> ToolContext:
        """Fresh request-scoped context; the tool cache starts empty."""
        collection = collection_for(page_id) if page_id else None
        return ToolContext(current_text=text, page_id=page_id, collection=collection)

    def process(
        self,
        action: str,
        text: str,
        metadata: Mapping[str, Any] | None = None,
        *,
        page_id: str | None = None,
    ) -> str:
        """Run the prompt called *action* over *text*.

        Parameters
        ----------
        action:
            Prompt template name, e.g. ``"complete"`` or ``"grammar"``.
        text:
            The text to process.
        metadata:
            Optional ``template`` (page id), ``examples`` (page ids),
            ``previous`` (page id) and ``snippets`` (strings).
        page_id:
            The page being edited.

        Raises
        ------
        ValidationError
            *action* or *text* is empty.
        TemplateNotFoundError
            No prompt template called *action* exists.
        UpstreamError
            The chat endpoint failed.
        """
        if not action or not action.strip():
            raise ValidationError("No action specified")
        if not text or not text.strip():
            raise ValidationError("No text provided")

        metadata = dict(metadata or {})
        context = self.new_context(text, page_id)
        variables = self._variables(action, text, metadata)
        prompt = self.assembler.load_prompt(action, variables, context)
        return self._complete(action, prompt, metadata, variables, context)

    def process_custom_prompt(
        self,
        prompt: str,
        text: str,
        metadata: Mapping[str, Any] | None = None,
        *,
        page_id: str | None = None,
    ) -> str:
        """Run a free-form instruction *prompt* over *text*."""
        if not prompt or not prompt.strip():
            raise ValidationError("No prompt provided")
        if not text or not text.strip():
            raise ValidationError("No text provided")

        metadata = dict(metadata or {})
        context = self.new_context(text, page_id)
        variables = self._variables("custom", text, metadata)
        user_prompt = f"{prompt}\n\nText to process:\n{text}"
        return self._complete("custom", user_prompt, metadata, variables, context)

    def find_template(self, text: str, *, page_id: str | None = None) -> str | None:
        """Id of the template page that best matches *text*, if any."""
        if not text or not text.strip():
            raise ValidationError("No text provided")
        if self.retriever is None:
            return None
        collection = collection_for(page_id) if page_id else None
        return self.retriever.find_template(text, collection=collection)

    def get_page(self, page_id: str) -> str:
        """Body of wiki page *page_id*.

        Raises
        ------
        NotFoundError
            The page does not exist.
        """
        body = self.pages.read(page_id)
        if body is None:
            raise NotFoundError(f"Page not found: {page_id}")
        return body

    # -- internals ------------------------------------------------------------

    def _variables(self, action: str, text: str, metadata: Mapping[str, Any]) -> dict[str, Any]:
        variables: dict[str, Any] = {
            "text": text,
            "think": "/think" if self.think else "/no_think",
            "action": action,
        }
        for key in PAGE_REFERENCES:
            if metadata.get(key):
                variables[f"page_{key}"] = metadata[key]
        return variables

    def _complete(
        self,
        action: str,
        prompt: str,
        metadata: Mapping[str, Any],
        variables: Mapping[str, Any],
        context: ToolContext,
    ) -> str:
        system = self.assembler.load_system_prompt(action, {"think": variables["think"]}, context)
        user = self.assembler.build_user_prompt(prompt, metadata, use_context=self.use_context)
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]
        logger.info("Processing action %r for page %s", action, context.page_id or "-")
        return self.orchestrator.run(messages, context=context, use_tools=self.use_tools)
