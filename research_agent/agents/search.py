# =============================================================================
# Search Stage — Google Search Grounding
# =============================================================================
#
# Asks Gemini to answer a query from live Google Search results and to read
# every page it cites. The interesting output is not the answer text but
# the list of cited URLs, which feeds the retrieval stage in the research
# loop.
#
# URL extraction:
#   groundingMetadata.groundingChunks[].web.uri
#     → keep absolute http(s) URLs only
#     → normalise + deduplicate, first-seen order
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from research_agent.errors import ValidationError
from research_agent.services.gemini import (
    Capability,
    CitedSource,
    GenerationClient,
)
from research_agent.services.urls import dedupe_urls

logger = logging.getLogger(__name__)

_SEARCH_CAPABILITIES = frozenset({Capability.SEARCH, Capability.RETRIEVAL})


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class SearchOutcome:
    """Result of one search stage call."""

    text: str
    urls: list[str] = field(default_factory=list)
    queries: list[str] = field(default_factory=list)
    citations: list[CitedSource] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

_SEARCH_PROMPT = """Research the following query using Google Search.

Query: {query}

Rules:
- Ground every statement in live search results, not prior knowledge
- Open and read the content of every URL you cite before relying on it
- Cite the sources you used
- Keep the answer concise and factual"""


def build_search_prompt(query: str, instruction: str | None = None) -> str:
    """Build the search prompt, prefixed by the caller's instruction if any."""
    prompt = _SEARCH_PROMPT.format(query=query)
    if instruction:
        return f"{instruction}\n\n{prompt}"
    return prompt


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def web_search(
    query: str,
    *,
    client: GenerationClient,
    instruction: str | None = None,
    model: str | None = None,
) -> SearchOutcome:
    """
    Run a grounded search for `query` and collect the cited URLs.

    Raises:
        ValidationError: If the query is blank.
        ConfigurationError, UpstreamError: From the generation client.
    """
    if not query or not query.strip():
        raise ValidationError("'query' must be a non-empty string")
    query = query.strip()

    logger.info("Web search: query='%s'", query[:120])

    result = await client.generate(
        build_search_prompt(query, instruction),
        _SEARCH_CAPABILITIES,
        model=model,
    )

    metadata = result.search_metadata
    citations = list(metadata.cited_sources) if metadata else []
    queries = list(metadata.queries) if metadata else []
    urls = dedupe_urls(c.uri for c in citations if c.uri)

    logger.info(
        "Web search complete: %d citations, %d unique URLs",
        len(citations), len(urls),
    )

    return SearchOutcome(
        text=result.text,
        urls=urls,
        queries=queries,
        citations=citations,
    )


def format_search_text(outcome: SearchOutcome) -> str:
    """
    Render a search outcome for the web_search tool.

    Appends `Search Queries:` and `Sources (Google Search):` sections when
    the provider reported any.
    """
    sections = [outcome.text]

    if outcome.queries:
        sections.append(
            "Search Queries:\n" + "\n".join(f"- {q}" for q in outcome.queries)
        )

    if outcome.citations:
        lines = []
        for citation in outcome.citations:
            uri = citation.uri or "(unknown)"
            lines.append(
                f"- {citation.title} ({uri})" if citation.title else f"- {uri}"
            )
        sections.append("Sources (Google Search):\n" + "\n".join(lines))

    return "\n\n".join(s for s in sections if s)
