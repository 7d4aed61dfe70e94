"""FastAPI application exposing the assistant and the indexer as a REST API."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from wikillm.agent.service import AssistantService
from wikillm.config import settings
from wikillm.errors import NotFoundError, ValidationError, WikiLLMError
from wikillm.ingestion.pipeline import FileOutcome, IngestionPipeline

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="WikiLLM API",
    version="0.1.0",
    description="REST interface to the wiki writing assistant and its document indexer.",
)


# ── Dependencies ──────────────────────────────────────────────────────
@lru_cache(maxsize=1)
def get_service() -> AssistantService:
    return AssistantService()


@lru_cache(maxsize=1)
def get_pipeline() -> IngestionPipeline:
    return IngestionPipeline()


# ── Error mapping ─────────────────────────────────────────────────────
@app.exception_handler(WikiLLMError)
async def handle_wikillm_error(request: Request, exc: WikiLLMError) -> JSONResponse:
    if isinstance(exc, ValidationError):
        status = 400
    elif isinstance(exc, NotFoundError):
        status = 404
    else:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        status = 500
    return JSONResponse(status_code=status, content={"error": str(exc)})


# ── Request / Response schemas ────────────────────────────────────────
class ProcessMetadata(BaseModel):
    """Pages and snippets to use as context."""

    template: str | None = None
    examples: list[str] = Field(default_factory=list)
    previous: str | None = None
    snippets: list[str] = Field(default_factory=list)


class ProcessRequest(BaseModel):
    """Text to run through a prompt; ``prompt`` is used when ``action`` is ``custom``."""

    action: str
    text: str
    page_id: str | None = None
    prompt: str | None = None
    metadata: ProcessMetadata = Field(default_factory=ProcessMetadata)


class ProcessResponse(BaseModel):
    result: str


class FindTemplateRequest(BaseModel):
    text: str
    page_id: str | None = None


class FindTemplateResponse(BaseModel):
    template: str | None = None


class PageResponse(BaseModel):
    page_id: str
    content: str


class IndexRequest(BaseModel):
    page_id: str


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@app.post("/process", response_model=ProcessResponse)
def process(request: ProcessRequest, service: AssistantService = Depends(get_service)) -> ProcessResponse:
    """Run a prompt template (or a custom prompt) over the submitted text."""
    metadata = request.metadata.model_dump(exclude_none=True)
    if request.action == "custom":
        result = service.process_custom_prompt(request.prompt or "", request.text, metadata, page_id=request.page_id)
    else:
        result = service.process(request.action, request.text, metadata, page_id=request.page_id)
    return ProcessResponse(result=result)


@app.post("/find_template", response_model=FindTemplateResponse)
def find_template(
    request: FindTemplateRequest,
    service: AssistantService = Depends(get_service),
) -> FindTemplateResponse:
    """Suggest the template page closest to the submitted text."""
    return FindTemplateResponse(template=service.find_template(request.text, page_id=request.page_id))


@app.get("/pages/{page_id}", response_model=PageResponse)
def get_page(page_id: str, service: AssistantService = Depends(get_service)) -> PageResponse:
    """Return the raw body of a wiki page."""
    return PageResponse(page_id=page_id, content=service.get_page(page_id))


@app.post("/index", response_model=FileOutcome)
def index_page(request: IndexRequest, pipeline: IngestionPipeline = Depends(get_pipeline)) -> FileOutcome:
    """(Re)index one wiki page, e.g. after it was saved."""
    return pipeline.process_page(request.page_id)
