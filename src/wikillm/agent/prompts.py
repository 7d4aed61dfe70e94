"""Prompt templates and prompt assembly.

Templates are flat text files ``<prompts_dir>/<language>/<name>.txt`` with
``{placeholder}`` tokens.  Substitution is a single literal pass: no
escaping, no recursion, unknown tokens stay as they are.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from wikillm.agent.sources import ReportSources, format_example_page, format_snippets
from wikillm.agent.state import ToolContext
from wikillm.config import settings
from wikillm.errors import TemplateNotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "default"

_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")
_TEMPLATE_NAME = re.compile(r"^[A-Za-z0-9_-]+$")


def find_placeholders(text: str) -> list[str]:
    """Unique ``{name}`` tokens in *text*, in order of first appearance."""
    return list(dict.fromkeys(_PLACEHOLDER.findall(text)))


def substitute(text: str, variables: Mapping[str, Any]) -> str:
    """Replace every ``{key}`` whose key is in *variables*; one pass only."""

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = variables[key]
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_replace, text)


class PromptLibrary:
    """Loads prompt templates with a fallback to the default language.

    Parameters
    ----------
    prompts_dir:
        Directory holding one sub-directory per language.
    language:
        Preferred language.
    """

    def __init__(self, prompts_dir: str | Path | None = None, *, language: str | None = None) -> None:
        self.prompts_dir = Path(prompts_dir if prompts_dir is not None else settings.prompts_dir)
        self.language = language or settings.language

    def load_template(self, name: str, language: str | None = None) -> str:
        """Return the raw text of template *name*.

        Raises
        ------
        ValidationError
            *name* is not a plain template name.
        TemplateNotFoundError
            Neither the requested nor the default language has the template.
        """
        if not name or not _TEMPLATE_NAME.match(name):
            raise ValidationError(f"Invalid prompt name: {name!r}")
        language = language or self.language
        for candidate in dict.fromkeys([language, DEFAULT_LANGUAGE]):
            path = self.prompts_dir / candidate / f"{name}.txt"
            if path.is_file():
                return path.read_text(encoding="utf-8")
        raise TemplateNotFoundError(f"Prompt template {name!r} not found for language {language!r}")


class PromptAssembler:
    """Renders prompts and the retrieved context block.

    Parameters
    ----------
    library:
        Source of prompt templates.
    sources:
        Page and retrieval lookups used for automatic placeholders and for
        the context block.
    """

    def __init__(self, library: PromptLibrary, sources: ReportSources) -> None:
        self.library = library
        self.sources = sources

    # -- prompts ---------------------------------------------------------------

    def load_prompt(
        self,
        name: str,
        variables: Mapping[str, Any] | None = None,
        context: ToolContext | None = None,
    ) -> str:
        """Load template *name* and fill its placeholders.

        Placeholders not present in *variables* are filled automatically:
        ``template``, ``snippets``, ``examples`` and ``previous`` from pages
        and the vector store (``previous`` also sets ``current_date`` and
        ``previous_date``); anything else becomes an empty string.
        """
        context = context or ToolContext()
        text = self.library.load_template(name)
        provided = dict(variables or {})
        values = dict(provided)

        for placeholder in find_placeholders(text):
            if placeholder in values:
                continue
            if placeholder == "template":
                values["template"] = self.sources.template_content(
                    context.current_text,
                    page_id=provided.get("page_template"),
                    collection=context.collection,
                )
            elif placeholder == "snippets":
                values["snippets"] = self.sources.snippets(context.current_text, 10, collection=context.collection)
            elif placeholder == "examples":
                values["examples"] = self.sources.examples_content(provided.get("page_examples"))
            elif placeholder == "previous":
                previous_id = provided.get("page_previous")
                values["previous"] = self.sources.previous_content(previous_id)
                if "current_date" not in provided:
                    values["current_date"] = self.sources.page_date(context.page_id)
                if "previous_date" not in provided:
                    values["previous_date"] = self.sources.page_date(previous_id) if previous_id else ""
            else:
                values[placeholder] = ""

        return substitute(text, values)

    def load_system_prompt(
        self,
        action: str,
        variables: Mapping[str, Any] | None = None,
        context: ToolContext | None = None,
    ) -> str:
        """The ``system`` prompt plus the optional ``<action>_system`` appendage."""
        system = self.load_prompt("system", variables, context)
        if not action:
            return system
        try:
            extra = self.load_prompt(f"{action}_system", variables, context)
        except (TemplateNotFoundError, ValidationError):
            logger.debug("No system appendage for action %r", action)
            return system
        return f"{system}\n{extra}"

    # -- context ---------------------------------------------------------------

    def build_context(self, metadata: Mapping[str, Any] | None) -> str:
        """Render the ``<context>`` block, or ``""`` when there is nothing to add.

        Blocks appear in a fixed order: the template page, complete example
        pages, then retrieved snippets.
        """
        metadata = metadata or {}
        blocks: list[str] = []

        template_id = metadata.get("template")
        if template_id:
            body = self.sources.page(template_id)
            if body is not None:
                blocks.append(f"<template>\nStart from this template ({template_id}):\n{body}\n</template>")

        example_ids = metadata.get("examples") or []
        if isinstance(example_ids, str):
            example_ids = [example_ids]
        pages = []
        for page_id in example_ids:
            body = self.sources.page(page_id)
            if body is not None:
                pages.append(format_example_page(page_id, body))
        if pages:
            blocks.append(
                "<style_examples>\n"
                "These are complete earlier reports; study my writing style:\n"
                + "\n".join(pages)
                + "\n</style_examples>"
            )

        snippets = [snippet for snippet in metadata.get("snippets") or [] if snippet]
        if snippets:
            blocks.append(
                "<style_examples>\n"
                "These are excerpts from my earlier reports; study the writing style, "
                "terminology and sentence structure:\n" + format_snippets(snippets) + "\n</style_examples>"
            )

        if not blocks:
            return ""
        return "<context>\n" + "\n\n".join(blocks) + "\n</context>"

    def build_user_prompt(
        self,
        prompt: str,
        metadata: Mapping[str, Any] | None = None,
        *,
        use_context: bool = True,
    ) -> str:
        """Prepend the context block (if any) to *prompt*."""
        if not use_context:
            return prompt
        block = self.build_context(metadata)
        return f"{block}\n\n{prompt}" if block else prompt
