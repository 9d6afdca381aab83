# =============================================================================
# FastAPI Application
# =============================================================================
#
# Run locally:
#   uvicorn research_agent.main:app --reload
#
# Logging is configured once here from settings.log_level. Network client
# libraries are kept at WARNING so request lines don't drown the research
# loop's own progress logs.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import FastAPI

from research_agent.api import tools
from research_agent.config import settings
from research_agent.models.responses import HealthResponse

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
for _noisy in ("httpx", "httpcore"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)


app = FastAPI(
    title=settings.app_name,
    description=(
        "Multi-step web research over Gemini Google Search and URL Context"
    ),
    version=settings.app_version,
    debug=settings.debug,
)

app.include_router(tools.router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(
        version=settings.app_version,
        service="research-agent",
    )
