# =============================================================================
# Unit Tests — Research Loop (LangGraph Orchestrator)
# =============================================================================
#
# Drives the full search → retrieve → evaluate graph with a scripted fake
# generation client. The fake routes each call by its capability set:
#   includes SEARCH      → next scripted search result
#   only RETRIEVAL       → next scripted retrieval result
#   no capabilities      → next scripted coverage judgment
# =============================================================================

from __future__ import annotations

import asyncio
import json

import pytest

from research_agent.agents.orchestrator import (
    DONE_MAX_ITERATIONS,
    DONE_NO_NEW_SOURCES,
    DONE_SUFFICIENT,
    RETRIEVAL_BATCH_SIZE,
    ResearchResult,
    clamp_iterations,
    format_research_text,
    research_or_scrape,
    run_research,
)
from research_agent.errors import ConfigurationError, UpstreamError, ValidationError
from research_agent.services.gemini import (
    Capability,
    CitedSource,
    GeminiClient,
    GenerationResult,
    SearchMetadata,
    UrlRetrieval,
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _url(name: str) -> str:
    return f"https://{name}.example.com/"


def _search(*names: str) -> GenerationResult:
    return GenerationResult(
        text="search answer",
        model="fake",
        search_metadata=SearchMetadata(
            queries=["q"],
            cited_sources=[CitedSource(title=n, uri=_url(n)) for n in names],
        ),
    )


def _retrieval(text: str, *names: str) -> GenerationResult:
    return GenerationResult(
        text=text,
        model="fake",
        retrieval_metadata=[
            UrlRetrieval(_url(n), "URL_RETRIEVAL_STATUS_SUCCESS") for n in names
        ],
    )


def _verdict(sufficient: bool, follow_ups: list[str] | None = None) -> GenerationResult:
    return GenerationResult(
        text=json.dumps({
            "is_sufficient": sufficient,
            "missing_points": [] if sufficient else ["more detail"],
            "follow_up_queries": follow_ups or [],
        }),
        model="fake",
    )


class ScriptedClient:
    """Fake GenerationClient replaying scripted results per stage."""

    def __init__(self, searches=(), retrievals=(), verdicts=()):
        self.searches = list(searches)
        self.retrievals = list(retrievals)
        self.verdicts = list(verdicts)
        self.calls: list[tuple[str, frozenset]] = []

    async def generate(self, prompt, capabilities=frozenset(), *, model=None, json_output=False):
        self.calls.append((prompt, capabilities))
        if Capability.SEARCH in capabilities:
            return self.searches.pop(0)
        if Capability.RETRIEVAL in capabilities:
            return self.retrievals.pop(0)
        return self.verdicts.pop(0)

    def prompts(self, kind: str) -> list[str]:
        if kind == "search":
            return [p for p, c in self.calls if Capability.SEARCH in c]
        if kind == "retrieval":
            return [
                p for p, c in self.calls
                if Capability.RETRIEVAL in c and Capability.SEARCH not in c
            ]
        return [p for p, c in self.calls if not c]


# ---------------------------------------------------------------------------
# Test: Iteration Budget
# ---------------------------------------------------------------------------


class TestClampIterations:
    @pytest.mark.parametrize("value,expected", [
        (-3, 1), (0, 1), (1, 1), (3, 3), (5, 5), (6, 5), (100, 5),
    ])
    def test_clamped_to_one_through_five(self, value, expected):
        assert clamp_iterations(value) == expected

    def test_none_uses_default(self):
        assert clamp_iterations(None) == 3


# ---------------------------------------------------------------------------
# Test: Loop Scenarios
# ---------------------------------------------------------------------------


class TestResearchLoop:
    """End-to-end runs of the research graph with scripted stages."""

    def test_follow_up_then_sufficient(self):
        client = ScriptedClient(
            searches=[_search("a", "b", "c"), _search("c", "d")],
            retrievals=[_retrieval("T1", "a", "b", "c"), _retrieval("T2", "d")],
            verdicts=[
                _verdict(False, ["climate policy enforcement"]),
                _verdict(True),
            ],
        )

        result = _run(run_research("climate policy 2024", client=client))

        assert result.summary == "T1\n\nT2"
        assert result.sources == [_url("a"), _url("b"), _url("c"), _url("d")]
        assert result.search_rounds == 2
        assert result.done_reason == DONE_SUFFICIENT

        # Second search used the follow-up query
        searches = client.prompts("search")
        assert "Query: climate policy 2024" in searches[0]
        assert "Query: climate policy enforcement" in searches[1]

        # Second retrieval only read the one new URL
        second_retrieval = client.prompts("retrieval")[1]
        assert _url("d") in second_retrieval
        assert _url("c") not in second_retrieval

        # Evaluation always judged the ORIGINAL query
        for prompt in client.prompts("evaluate"):
            assert "Research question:\nclimate policy 2024" in prompt

    def test_no_follow_up_reruns_same_query_then_stops(self):
        client = ScriptedClient(
            searches=[_search("a", "b"), _search("a", "b")],
            retrievals=[_retrieval("T1", "a", "b")],
            verdicts=[_verdict(False, [])],
        )

        result = _run(run_research("q", client=client, max_iterations=5))

        assert result.search_rounds == 2
        assert result.done_reason == DONE_NO_NEW_SOURCES
        assert result.summary == "T1"
        searches = client.prompts("search")
        assert searches[0] == searches[1]
        assert len(client.prompts("retrieval")) == 1

    def test_empty_first_search_stops_immediately(self):
        client = ScriptedClient(searches=[_search()])

        result = _run(run_research("q", client=client, max_iterations=5))

        assert result.search_rounds == 1
        assert result.done_reason == DONE_NO_NEW_SOURCES
        assert result.summary == ""
        assert format_research_text(result) == "Sources:\n- (none)"
        assert len(client.calls) == 1

    def test_sufficiency_wins_over_follow_ups(self):
        client = ScriptedClient(
            searches=[_search("a")],
            retrievals=[_retrieval("T1", "a")],
            verdicts=[_verdict(True, ["unused follow-up"])],
        )

        result = _run(run_research("q", client=client))

        assert result.done_reason == DONE_SUFFICIENT
        assert len(client.prompts("search")) == 1

    def test_budget_exhaustion_stops_loop(self):
        client = ScriptedClient(
            searches=[_search("a"), _search("b")],
            retrievals=[_retrieval("T1", "a"), _retrieval("T2", "b")],
            verdicts=[_verdict(False, ["next 1"]), _verdict(False, ["next 2"])],
        )

        result = _run(run_research("q", client=client, max_iterations=2))

        assert result.done_reason == DONE_MAX_ITERATIONS
        assert result.search_rounds == 2
        assert result.summary == "T1\n\nT2"
        # The remaining follow-up is never searched
        assert len(client.prompts("search")) == 2

    def test_budget_above_five_is_clamped(self):
        n = 8
        client = ScriptedClient(
            searches=[_search(f"s{i}") for i in range(n)],
            retrievals=[_retrieval(f"T{i}", f"s{i}") for i in range(n)],
            verdicts=[_verdict(False, [f"next {i}"]) for i in range(n)],
        )

        result = _run(run_research("q", client=client, max_iterations=50))

        assert result.search_rounds == 5
        assert result.done_reason == DONE_MAX_ITERATIONS
        assert len(client.prompts("evaluate")) == 5

    def test_budget_below_one_is_clamped(self):
        client = ScriptedClient(
            searches=[_search("a")],
            retrievals=[_retrieval("T1", "a")],
            verdicts=[_verdict(False, ["next"])],
        )

        result = _run(run_research("q", client=client, max_iterations=0))

        assert result.search_rounds == 1
        assert result.done_reason == DONE_MAX_ITERATIONS

    def test_retrieval_batch_capped_at_ten(self):
        names = [f"u{i}" for i in range(15)]
        client = ScriptedClient(
            searches=[_search(*names)],
            retrievals=[_retrieval("T1", *names[:RETRIEVAL_BATCH_SIZE])],
            verdicts=[_verdict(True)],
        )

        _run(run_research("q", client=client))

        prompt = client.prompts("retrieval")[0]
        listed = [line for line in prompt.splitlines() if line.startswith("https://")]
        assert len(listed) == 10
        assert listed == [_url(n) for n in names[:10]]

    def test_urls_seen_earlier_are_not_reread(self):
        # Round 1 finds 12 URLs and reads 10. Round 2 finds the same 12
        # plus one more; only that one is read.
        first = [f"u{i}" for i in range(12)]
        client = ScriptedClient(
            searches=[_search(*first), _search(*first, "new")],
            retrievals=[
                _retrieval("T1", *first[:10]),
                _retrieval("T2", "new"),
            ],
            verdicts=[_verdict(False, ["more"]), _verdict(True)],
        )

        _run(run_research("q", client=client))

        second = client.prompts("retrieval")[1]
        listed = [line for line in second.splitlines() if line.startswith("https://")]
        assert listed == [_url("new")]

    def test_malformed_judgment_continues_loop(self):
        client = ScriptedClient(
            searches=[_search("a"), _search("a")],
            retrievals=[_retrieval("T1", "a")],
            verdicts=[GenerationResult(text="I think it's fine", model="fake")],
        )

        result = _run(run_research("q", client=client))

        assert result.done_reason == DONE_NO_NEW_SOURCES
        assert result.search_rounds == 2
        assert result.summary == "T1"

    def test_sources_deduplicated_across_iterations(self):
        client = ScriptedClient(
            searches=[_search("a"), _search("b")],
            retrievals=[_retrieval("T1", "a"), _retrieval("T2", "b", "a")],
            verdicts=[_verdict(False, ["more"]), _verdict(True)],
        )

        result = _run(run_research("q", client=client))

        assert result.sources == [_url("a"), _url("b")]
        assert format_research_text(result) == (
            "T1\n\nT2\n\nSources:\n"
            f"- {_url('a')}\n- {_url('b')}"
        )

    def test_empty_retrieval_text_not_appended(self):
        client = ScriptedClient(
            searches=[_search("a"), _search("b")],
            retrievals=[_retrieval("", "a"), _retrieval("T2", "b")],
            verdicts=[_verdict(False, ["more"]), _verdict(True)],
        )

        result = _run(run_research("q", client=client))

        assert result.summary == "T2"

    def test_caller_instruction_used_for_retrieval(self):
        client = ScriptedClient(
            searches=[_search("a")],
            retrievals=[_retrieval("T1", "a")],
            verdicts=[_verdict(True)],
        )

        _run(run_research("q", client=client, instruction="List prices only"))

        assert client.prompts("retrieval")[0].startswith("List prices only")

    def test_default_instruction_restates_query(self):
        client = ScriptedClient(
            searches=[_search("a")],
            retrievals=[_retrieval("T1", "a")],
            verdicts=[_verdict(True)],
        )

        _run(run_research("ocean heat content", client=client))

        assert "Research question: ocean heat content" in client.prompts("retrieval")[0]

    def test_blank_query_rejected(self):
        with pytest.raises(ValidationError):
            _run(run_research("  ", client=ScriptedClient()))


# ---------------------------------------------------------------------------
# Test: Error Propagation
# ---------------------------------------------------------------------------


class TestResearchErrors:
    def test_missing_credential_aborts_run(self):
        client = GeminiClient(api_key="")
        with pytest.raises(ConfigurationError):
            _run(run_research("q", client=client))

    def test_upstream_error_in_evaluation_aborts_run(self):
        class FailingEvaluator(ScriptedClient):
            async def generate(self, prompt, capabilities=frozenset(), **kwargs):
                if not capabilities:
                    raise UpstreamError(500, "internal")
                return await super().generate(prompt, capabilities, **kwargs)

        client = FailingEvaluator(
            searches=[_search("a")],
            retrievals=[_retrieval("T1", "a")],
        )
        with pytest.raises(UpstreamError) as exc_info:
            _run(run_research("q", client=client))
        assert exc_info.value.body == "internal"


# ---------------------------------------------------------------------------
# Test: research_or_scrape
# ---------------------------------------------------------------------------


class TestResearchOrScrape:
    def test_urls_bypass_loop(self):
        client = ScriptedClient(retrievals=[_retrieval("Page summary", "a")])

        text = _run(research_or_scrape(client=client, urls=_url("a")))

        assert text == (
            "Page summary\n\nSources (URL Context):\n"
            f"- {_url('a')} [URL_RETRIEVAL_STATUS_SUCCESS]"
        )
        assert len(client.calls) == 1
        assert client.calls[0][1] == frozenset({Capability.RETRIEVAL})

    def test_query_runs_loop_with_trailer(self):
        client = ScriptedClient(
            searches=[_search("a")],
            retrievals=[_retrieval("T1", "a")],
            verdicts=[_verdict(True)],
        )

        text = _run(research_or_scrape(client=client, query="q"))

        assert text == f"T1\n\nSources:\n- {_url('a')}"

    def test_twenty_one_urls_rejected_before_any_call(self):
        client = ScriptedClient()
        urls = [f"https://e.com/{i}" for i in range(21)]
        with pytest.raises(ValidationError, match="Maximum of 20"):
            _run(research_or_scrape(client=client, urls=urls))
        assert client.calls == []

    def test_empty_url_list_rejected_not_treated_as_absent(self):
        client = ScriptedClient()
        with pytest.raises(ValidationError, match="non-empty array"):
            _run(research_or_scrape(client=client, urls=[], query="q"))
        assert client.calls == []

    def test_neither_urls_nor_query_rejected(self):
        with pytest.raises(ValidationError):
            _run(research_or_scrape(client=ScriptedClient()))


class TestFormatResearchText:
    def test_trailer_only_without_summary(self):
        result = ResearchResult(summary="", sources=[_url("a")])
        assert format_research_text(result) == f"Sources:\n- {_url('a')}"
