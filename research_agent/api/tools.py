# =============================================================================
# Tools API — Research Tool Endpoints
# =============================================================================
#
#   GET  /tools                     → names, descriptions, input schemas
#   POST /tools/analyze_urls        → read URLs with Gemini URL Context
#   POST /tools/web_search          → Google Search grounded answer
#   POST /tools/research_or_scrape  → read URLs, or run the research loop
#
# Request bodies are validated by the Pydantic models before the handler
# runs (422 on bad input, no Gemini call made).
#
# Error mapping:
#   ConfigurationError → 503 Service Unavailable
#   UpstreamError      → 502 Bad Gateway (upstream status + body in detail)
#   ValidationError    → 422 Unprocessable Entity
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Awaitable

from fastapi import APIRouter, Depends, HTTPException

from research_agent.agents.orchestrator import research_or_scrape
from research_agent.agents.retrieval import analyze_urls, format_retrieval_text
from research_agent.agents.search import format_search_text, web_search
from research_agent.errors import ConfigurationError, UpstreamError, ValidationError
from research_agent.models.requests import (
    AnalyzeUrlsRequest,
    ResearchRequest,
    WebSearchRequest,
)
from research_agent.models.responses import ToolInfo, ToolListResponse, ToolResponse
from research_agent.services.gemini import GenerationClient, get_generation_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tools", tags=["Research Tools"])


_TOOL_DESCRIPTIONS = {
    "analyze_urls": (
        "Analyze and summarize the content of given URLs using Google Gemini "
        "URL Context. Provide an optional instruction and model."
    ),
    "web_search": (
        "Answer a query with Google Search grounding and list the search "
        "queries and cited sources."
    ),
    "research_or_scrape": (
        "Read the given URLs, or research a query iteratively: search, read "
        "new sources, check coverage, and follow up until the answer is "
        "sufficient (max 5 iterations)."
    ),
}

_TOOL_REQUESTS = {
    "analyze_urls": AnalyzeUrlsRequest,
    "web_search": WebSearchRequest,
    "research_or_scrape": ResearchRequest,
}


async def _run_tool(name: str, call: Awaitable[str]) -> ToolResponse:
    """Await a tool call and map package errors to HTTP errors."""
    try:
        text = await call
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except ConfigurationError as e:
        logger.error("Configuration error in %s: %s", name, e)
        raise HTTPException(
            status_code=503,
            detail=f"Service configuration error: {e}",
        ) from e
    except UpstreamError as e:
        logger.error(
            "Upstream error in %s: status=%d", name, e.status_code,
        )
        raise HTTPException(
            status_code=502,
            detail={
                "message": str(e),
                "upstream_status": e.status_code,
                "upstream_body": e.body,
            },
        ) from e
    return ToolResponse(text=text)


# ---------------------------------------------------------------------------
# GET /tools — List available tools
# ---------------------------------------------------------------------------


@router.get("", response_model=ToolListResponse, summary="List research tools")
async def list_tools() -> ToolListResponse:
    return ToolListResponse(
        tools=[
            ToolInfo(
                name=name,
                description=_TOOL_DESCRIPTIONS[name],
                input_schema=model.model_json_schema(),
            )
            for name, model in _TOOL_REQUESTS.items()
        ]
    )


# ---------------------------------------------------------------------------
# POST /tools/analyze_urls
# ---------------------------------------------------------------------------


@router.post(
    "/analyze_urls",
    response_model=ToolResponse,
    summary="Analyze URLs with Gemini URL Context",
    description=_TOOL_DESCRIPTIONS["analyze_urls"],
)
async def analyze_urls_endpoint(
    request: AnalyzeUrlsRequest,
    client: GenerationClient = Depends(get_generation_client),
) -> ToolResponse:
    logger.info("analyze_urls: %d URLs", len(request.urls))

    async def call() -> str:
        outcome = await analyze_urls(
            request.urls,
            client=client,
            instruction=request.instruction,
            model=request.model,
            allow_search_fallback=request.use_google_search,
        )
        return format_retrieval_text(outcome)

    return await _run_tool("analyze_urls", call())


# ---------------------------------------------------------------------------
# POST /tools/web_search
# ---------------------------------------------------------------------------


@router.post(
    "/web_search",
    response_model=ToolResponse,
    summary="Search the web with Google Search grounding",
    description=_TOOL_DESCRIPTIONS["web_search"],
)
async def web_search_endpoint(
    request: WebSearchRequest,
    client: GenerationClient = Depends(get_generation_client),
) -> ToolResponse:
    logger.info("web_search: query='%s'", request.query[:80])

    async def call() -> str:
        outcome = await web_search(
            request.query,
            client=client,
            instruction=request.instruction,
            model=request.model,
        )
        return format_search_text(outcome)

    return await _run_tool("web_search", call())


# ---------------------------------------------------------------------------
# POST /tools/research_or_scrape
# ---------------------------------------------------------------------------


@router.post(
    "/research_or_scrape",
    response_model=ToolResponse,
    summary="Read URLs or research a query iteratively",
    description=_TOOL_DESCRIPTIONS["research_or_scrape"],
)
async def research_or_scrape_endpoint(
    request: ResearchRequest,
    client: GenerationClient = Depends(get_generation_client),
) -> ToolResponse:
    logger.info(
        "research_or_scrape: urls=%d, query='%s', max_iterations=%s",
        len(request.urls or []),
        (request.query or "")[:80],
        request.max_iterations,
    )

    return await _run_tool(
        "research_or_scrape",
        research_or_scrape(
            client=client,
            urls=request.urls,
            query=request.query,
            instruction=request.instruction,
            model=request.model,
            max_iterations=request.max_iterations,
        ),
    )
