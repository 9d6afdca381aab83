# =============================================================================
# LangGraph Orchestrator — Iterative Research Loop
# =============================================================================
#
# Wires the search, retrieval and coverage stages into a bounded loop:
#
#   START ──▶ search ──▶ retrieve ──▶ evaluate ──┐
#               ▲   │                            │
#               │   └── no new URLs ──▶ END      │
#               └──────── follow-up / retry ─────┤
#                                                └── sufficient / budget ──▶ END
#
# Per iteration:
#   1. search   — run the working query; keep only URLs never seen before.
#                 None new → END, whatever budget is left.
#   2. retrieve — read at most 10 of the new URLs; append the text to the
#                 summary (blank-line separated) and record the sources.
#   3. evaluate — judge the summary against the ORIGINAL query.
#                 sufficient            → END (even if follow-ups were given)
#                 follow-ups offered    → working query = first follow-up
#                 nothing offered       → same working query again
#                 either way iteration += 1; END when it reaches the budget.
#
# The budget is clamp(max_iterations, 1, 5).
#
# DESIGN DECISION: Stage errors (ConfigurationError, UpstreamError) are not
# caught here. One failed call fails the whole research run.
#
# DESIGN DECISION: The generation client travels in the graph state, the
# same way the LLM override did for the Q&A graph. No checkpointer is
# configured, so the state never needs to be serialisable.
#
# When explicit URLs are given (research_or_scrape), the graph is skipped
# and a single retrieval call is made.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from research_agent.agents.coverage import (
    CoverageVerdict,
    Malformed,
    Parsed,
    evaluate_coverage,
)
from research_agent.agents.retrieval import (
    analyze_urls,
    format_retrieval_text,
)
from research_agent.agents.search import web_search
from research_agent.config import settings
from research_agent.errors import ValidationError
from research_agent.services.gemini import GenerationClient
from research_agent.services.urls import coerce_url_list

logger = logging.getLogger(__name__)

MIN_ITERATIONS = 1
MAX_ITERATIONS = 5
RETRIEVAL_BATCH_SIZE = 10

DONE_NO_NEW_SOURCES = "no_new_sources"
DONE_SUFFICIENT = "sufficient"
DONE_MAX_ITERATIONS = "max_iterations"


# ---------------------------------------------------------------------------
# Research State Schema
# ---------------------------------------------------------------------------


class ResearchState(TypedDict, total=False):
    """
    State threaded through the research graph.

    Uses total=False so nodes only return the keys they update.
    """

    # --- Input (set by caller) ---
    query: str
    instruction: str | None
    model: str | None
    max_iterations: int
    client: GenerationClient

    # --- Loop state ---
    working_query: str
    seen_urls: set[str]        # only ever grows
    new_urls: list[str]        # unseen URLs from the latest search
    combined_summary: str      # append-only
    all_sources: list[str]     # may repeat; deduplicated on output
    iteration: int             # 0 ≤ iteration ≤ max_iterations
    search_rounds: int
    verdict: CoverageVerdict | None

    # --- Output ---
    done_reason: str | None


@dataclass
class ResearchResult:
    """
    Final result of one research run.

    `search_rounds` counts SEARCH stage executions, including the last one
    that found nothing new. It is not the evaluation counter bounded by
    max_iterations: a run that stops on "no new sources" after one
    evaluation reports two search rounds.
    """

    summary: str
    sources: list[str] = field(default_factory=list)
    search_rounds: int = 0
    done_reason: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def clamp_iterations(value: int | None) -> int:
    """Effective iteration budget: the caller's value clamped to [1, 5]."""
    if value is None:
        value = settings.default_research_iterations
    return max(MIN_ITERATIONS, min(MAX_ITERATIONS, int(value)))


def default_retrieval_instruction(query: str) -> str:
    return (
        f"Research question: {query}\n\n"
        "Extract the information from the URLs below that helps answer "
        "the research question. Provide a concise, well-structured "
        "summary with key facts, and cite the URL each fact comes from."
    )


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


# ---------------------------------------------------------------------------
# Node Functions
# ---------------------------------------------------------------------------


async def search_node(state: ResearchState) -> dict:
    """Search with the working query and keep the URLs not seen before."""
    seen = state.get("seen_urls", set())
    rounds = state.get("search_rounds", 0) + 1

    outcome = await web_search(
        state["working_query"],
        client=state["client"],
        instruction=state.get("instruction"),
        model=state.get("model"),
    )
    new_urls = [url for url in outcome.urls if url not in seen]

    logger.info(
        "Research round %d: %d URLs found, %d new (query='%s')",
        rounds, len(outcome.urls), len(new_urls),
        state["working_query"][:80],
    )

    update: dict = {
        "seen_urls": seen | set(new_urls),
        "new_urls": new_urls,
        "search_rounds": rounds,
    }
    if not new_urls:
        logger.info("No new sources found; stopping research")
        update["done_reason"] = DONE_NO_NEW_SOURCES
    return update


async def retrieve_node(state: ResearchState) -> dict:
    """Read the first batch of new URLs and grow the summary."""
    batch = state["new_urls"][:RETRIEVAL_BATCH_SIZE]

    outcome = await analyze_urls(
        batch,
        client=state["client"],
        instruction=(
            state.get("instruction")
            or default_retrieval_instruction(state["query"])
        ),
        model=state.get("model"),
    )

    summary = state.get("combined_summary", "")
    if outcome.text:
        summary = f"{summary}\n\n{outcome.text}" if summary else outcome.text

    logger.info(
        "Retrieved %d/%d URLs (%d sources reported)",
        len(batch), len(state["new_urls"]), len(outcome.sources),
    )

    return {
        "combined_summary": summary,
        "all_sources": state.get("all_sources", []) + outcome.sources,
    }


async def evaluate_node(state: ResearchState) -> dict:
    """Judge the summary and pick the next working query."""
    result = await evaluate_coverage(
        state["query"],
        state.get("combined_summary", ""),
        client=state["client"],
        model=state.get("model"),
    )

    match result:
        case Parsed(verdict=verdict):
            pass
        case Malformed() as malformed:
            logger.info(
                "Unreadable coverage judgment (%d chars); continuing "
                "without new direction", len(malformed.raw_text),
            )
            verdict = malformed.verdict

    if verdict.is_sufficient:
        logger.info("Coverage sufficient; stopping research")
        return {"verdict": verdict, "done_reason": DONE_SUFFICIENT}

    iteration = state.get("iteration", 0) + 1
    update: dict = {"verdict": verdict, "iteration": iteration}

    follow_ups = [q.strip() for q in verdict.follow_up_queries if q.strip()]
    if follow_ups:
        update["working_query"] = follow_ups[0]
        logger.info(
            "Coverage insufficient; next query='%s'",
            update["working_query"][:80],
        )
    else:
        logger.info("Coverage insufficient; no follow-up, retrying same query")

    if iteration >= state["max_iterations"]:
        logger.info("Iteration budget (%d) exhausted", state["max_iterations"])
        update["done_reason"] = DONE_MAX_ITERATIONS
    return update


def _route_after_search(state: ResearchState) -> str:
    return END if state.get("done_reason") else "retrieve"


def _route_after_evaluate(state: ResearchState) -> str:
    return END if state.get("done_reason") else "search"


# ---------------------------------------------------------------------------
# Graph Assembly
# ---------------------------------------------------------------------------

_builder = StateGraph(ResearchState)
_builder.add_node("search", search_node)
_builder.add_node("retrieve", retrieve_node)
_builder.add_node("evaluate", evaluate_node)

_builder.add_edge(START, "search")
_builder.add_conditional_edges(
    "search", _route_after_search, {"retrieve": "retrieve", END: END},
)
_builder.add_edge("retrieve", "evaluate")
_builder.add_conditional_edges(
    "evaluate", _route_after_evaluate, {"search": "search", END: END},
)

graph = _builder.compile()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def run_research(
    query: str,
    *,
    client: GenerationClient,
    instruction: str | None = None,
    model: str | None = None,
    max_iterations: int | None = None,
) -> ResearchResult:
    """
    Run the search → retrieve → evaluate loop for `query`.

    Args:
        query: The research question.
        client: Generation client shared by all stages.
        instruction: Optional instruction for search and retrieval prompts.
        model: Optional model id override for every stage.
        max_iterations: Iteration budget, clamped to [1, 5]. Defaults to
            settings.default_research_iterations.

    Raises:
        ValidationError: If the query is blank.
        ConfigurationError, UpstreamError: From any stage, unchanged.
    """
    if not query or not query.strip():
        raise ValidationError("'query' must be a non-empty string")
    query = query.strip()
    budget = clamp_iterations(max_iterations)

    initial_state: ResearchState = {
        "query": query,
        "instruction": instruction,
        "model": model,
        "max_iterations": budget,
        "client": client,
        "working_query": query,
        "seen_urls": set(),
        "new_urls": [],
        "combined_summary": "",
        "all_sources": [],
        "iteration": 0,
        "search_rounds": 0,
        "verdict": None,
        "done_reason": None,
    }

    logger.info("Starting research: query='%s', budget=%d", query[:80], budget)

    # Three nodes per iteration plus the final search round.
    final = await graph.ainvoke(
        initial_state,
        config={"recursion_limit": 3 * MAX_ITERATIONS + 5},
    )

    result = ResearchResult(
        summary=final.get("combined_summary", ""),
        sources=_dedupe(final.get("all_sources", [])),
        search_rounds=final.get("search_rounds", 0),
        done_reason=final.get("done_reason"),
    )

    logger.info(
        "Research complete: %d rounds, %d sources, reason=%s",
        result.search_rounds, len(result.sources), result.done_reason,
    )
    return result


def format_research_text(result: ResearchResult) -> str:
    """Render the summary followed by a deterministic Sources trailer."""
    if result.sources:
        trailer = "Sources:\n" + "\n".join(f"- {url}" for url in result.sources)
    else:
        trailer = "Sources:\n- (none)"

    if result.summary:
        return f"{result.summary}\n\n{trailer}"
    return trailer


async def research_or_scrape(
    *,
    client: GenerationClient,
    urls: str | list[str] | None = None,
    query: str | None = None,
    instruction: str | None = None,
    model: str | None = None,
    max_iterations: int | None = None,
) -> str:
    """
    Read the given URLs, or research the query when `urls` is omitted.

    With URLs: one URL Context call, no search, no loop.
    Without URLs: the research loop, returning the summary with its
    Sources trailer.

    Raises:
        ValidationError: Neither URLs nor a query, or a bad URL list.
        ConfigurationError, UpstreamError: From the stages.
    """
    if urls is not None:
        url_list = coerce_url_list(urls)
        outcome = await analyze_urls(
            url_list,
            client=client,
            instruction=instruction,
            model=model,
            allow_search_fallback=False,
        )
        return format_retrieval_text(outcome)

    if not query or not query.strip():
        raise ValidationError("Either 'urls' or 'query' must be provided")

    result = await run_research(
        query,
        client=client,
        instruction=instruction,
        model=model,
        max_iterations=max_iterations,
    )
    return format_research_text(result)
