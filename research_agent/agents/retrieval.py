# =============================================================================
# Retrieval Stage — Gemini URL Context
# =============================================================================
#
# Reads a fixed set of URLs with the URL Context tool and returns the
# model's synthesis together with the URLs the provider says it fetched.
#
# The provider reports one entry per attempted URL with a retrieval status
# (e.g. URL_RETRIEVAL_STATUS_SUCCESS / _ERROR). Every requested URL the
# provider attempted is recorded as a source whatever its status. URLs it
# never attempted are dropped without error, and URLs it reports but nobody
# asked for (redirect targets, search hits) are not sources.
# =============================================================================

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from research_agent.errors import ValidationError
from research_agent.services.gemini import (
    Capability,
    GenerationClient,
    UrlRetrieval,
)
from research_agent.services.urls import (
    MAX_URLS_PER_REQUEST,
    is_source_url,
    normalize_url,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class RetrievalOutcome:
    """Result of one retrieval stage call."""

    text: str
    sources: list[str] = field(default_factory=list)
    retrievals: list[UrlRetrieval] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

_DEFAULT_INSTRUCTION = (
    "Analyze these URLs and provide a concise, well-structured summary, "
    "key facts, and citations. Only use the content of the URLs listed "
    "below; do not fetch or cite any other pages:"
)


def build_retrieval_prompt(urls: list[str], instruction: str | None = None) -> str:
    """Build the URL Context prompt for exactly the given URLs."""
    url_block = "\n".join(urls)
    if instruction:
        return f"{instruction}\n\nAnalyze these URLs:\n{url_block}"
    return f"{_DEFAULT_INSTRUCTION}\n{url_block}"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def analyze_urls(
    urls: list[str],
    *,
    client: GenerationClient,
    instruction: str | None = None,
    model: str | None = None,
    allow_search_fallback: bool = False,
) -> RetrievalOutcome:
    """
    Read `urls` with URL Context and synthesise their content.

    Args:
        urls: 1 to 20 URLs to read.
        client: Generation client.
        instruction: Optional task description replacing the default prompt.
        model: Optional model id override.
        allow_search_fallback: Also attach Google Search to the request.

    Raises:
        ValidationError: If `urls` is empty or has more than 20 entries.
        ConfigurationError, UpstreamError: From the generation client.
    """
    if not urls:
        raise ValidationError(
            "'urls' must be provided as a string or a non-empty array"
        )
    if len(urls) > MAX_URLS_PER_REQUEST:
        raise ValidationError(
            f"Maximum of {MAX_URLS_PER_REQUEST} URLs supported"
        )

    capabilities = {Capability.RETRIEVAL}
    if allow_search_fallback:
        capabilities.add(Capability.SEARCH)

    logger.info(
        "Analyzing %d URLs (search_fallback=%s)",
        len(urls), allow_search_fallback,
    )

    result = await client.generate(
        build_retrieval_prompt(urls, instruction),
        frozenset(capabilities),
        model=model,
    )

    requested = {normalize_url(u) for u in urls if is_source_url(u)}
    sources = [
        normalize_url(r.url)
        for r in result.retrieval_metadata
        if r.url and is_source_url(r.url)
        and normalize_url(r.url) in requested
    ]

    logger.info(
        "URL analysis complete: %d/%d URLs attempted by provider",
        len(sources), len(urls),
    )

    return RetrievalOutcome(
        text=result.text,
        sources=sources,
        retrievals=list(result.retrieval_metadata),
        raw=result.raw,
    )


def format_retrieval_text(outcome: RetrievalOutcome) -> str:
    """
    Render a retrieval outcome for the analyze_urls tool.

    Appends a `Sources (URL Context):` section listing each attempted URL
    with its retrieval status. If the model returned no text at all, the
    raw provider payload is returned instead so the caller still sees
    what came back.
    """
    if not outcome.text:
        return json.dumps(outcome.raw, indent=2)

    if not outcome.retrievals:
        return outcome.text

    lines = [
        f"- {r.url or '(unknown)'} [{r.status or ''}]"
        for r in outcome.retrievals
    ]
    return outcome.text + "\n\nSources (URL Context):\n" + "\n".join(lines)
