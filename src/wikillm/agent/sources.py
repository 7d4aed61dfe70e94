"""Page and retrieval content shared by prompt placeholders and tools.

Every method returns display-ready text and falls back to a short
parenthesised marker when nothing is available, so callers can drop the
result straight into a prompt.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from wikillm.ingestion.identifier import page_date
from wikillm.ingestion.loader import FilePageStore
from wikillm.retrieval.retriever import ReportRetriever

logger = logging.getLogger(__name__)

NO_TEMPLATE = "( no template )"
NO_EXAMPLES = "( no examples )"
NO_PREVIOUS = "( no previous report )"
PREVIOUS_NOT_FOUND = "( previous report not found )"


def format_snippets(snippets: Iterable[str]) -> str:
    return "\n".join(
        f'<example id="{index}">\n{snippet}\n</example>' for index, snippet in enumerate(snippets, start=1)
    )


def format_example_page(page_id: str, body: str) -> str:
    return f'<example_page source="{page_id}">\n{body}\n</example_page>'


class ReportSources:
    """Looks up wiki pages and vector-store matches for prompt building.

    Parameters
    ----------
    pages:
        Page store for reading wiki pages by id.
    retriever:
        Vector-store retriever; ``None`` disables every retrieval-backed
        lookup.
    """

    def __init__(self, pages: FilePageStore, retriever: ReportRetriever | None = None) -> None:
        self.pages = pages
        self.retriever = retriever

    def page(self, page_id: str) -> str | None:
        return self.pages.read(page_id)

    def template_content(
        self,
        text: str,
        *,
        page_id: str | None = None,
        collection: str | None = None,
    ) -> str:
        """Body of *page_id* if given and present, else of the best-matching template."""
        if page_id:
            body = self.page(page_id)
            if body is not None:
                return body
        if self.retriever is None:
            return NO_TEMPLATE
        template_id = self.retriever.find_template(text, collection=collection)
        if template_id:
            body = self.page(template_id)
            if body is not None:
                return body
            logger.warning("Template %s matched but its page is missing", template_id)
        return NO_TEMPLATE

    def snippets(self, text: str, count: int = 10, *, collection: str | None = None) -> str:
        if self.retriever is None:
            return NO_EXAMPLES
        found = self.retriever.find_snippets(text, k=count, collection=collection)
        return format_snippets(found) if found else NO_EXAMPLES

    def examples_content(self, page_ids: Iterable[str] | None) -> str:
        if not page_ids or isinstance(page_ids, str):
            return NO_EXAMPLES
        bodies = []
        for page_id in page_ids:
            body = self.page(page_id)
            if body is not None:
                bodies.append(format_example_page(page_id, body))
        return "\n".join(bodies) if bodies else NO_EXAMPLES

    def previous_content(self, page_id: str | None) -> str:
        if not page_id:
            return NO_PREVIOUS
        body = self.page(page_id)
        return body if body is not None else PREVIOUS_NOT_FOUND

    def page_date(self, page_id: str | None) -> str:
        """Date encoded in *page_id*, else the page file's modification date."""
        if not page_id:
            return ""
        encoded = page_date(page_id)
        if encoded:
            return encoded
        modified = self.pages.modified(page_id)
        if modified is None:
            return ""
        return datetime.fromtimestamp(modified).date().isoformat()
