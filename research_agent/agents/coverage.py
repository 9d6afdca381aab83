# =============================================================================
# Coverage Evaluator — Is the Research Summary Enough?
# =============================================================================
#
# After each retrieval round the research loop asks Gemini to judge the
# accumulated summary against the ORIGINAL question:
#
#   { "is_sufficient": bool,
#     "missing_points": [str, ...],
#     "follow_up_queries": [str, ...] }
#
# This is a pure reasoning call: no search, no URL context.
#
# The model's reply is decoded into one of two values:
#   Parsed(verdict)     — the reply matched the schema
#   Malformed(raw_text) — anything else (prose, broken JSON, missing keys)
#
# A malformed reply is an expected outcome, not an error. Its verdict is
# "insufficient, nothing missing, no follow-ups", which lets the loop carry
# on with the same query (and usually stop at the next search round).
# Transport failures still raise.
# =============================================================================

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from research_agent.services.gemini import GenerationClient

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


class CoverageVerdict(BaseModel):
    """Structured judgment on whether a summary answers the query."""

    model_config = ConfigDict(extra="ignore", strict=True, populate_by_name=True)

    is_sufficient: bool = Field(
        validation_alias=AliasChoices("is_sufficient", "isSufficient"),
    )
    missing_points: list[str] = Field(
        validation_alias=AliasChoices("missing_points", "missingPoints"),
    )
    follow_up_queries: list[str] = Field(
        validation_alias=AliasChoices("follow_up_queries", "followUpQueries"),
    )


@dataclass(frozen=True)
class Parsed:
    """The evaluator reply matched the verdict schema."""

    verdict: CoverageVerdict


@dataclass(frozen=True)
class Malformed:
    """The evaluator reply could not be decoded."""

    raw_text: str

    @property
    def verdict(self) -> CoverageVerdict:
        """The degraded verdict: insufficient, no follow-ups."""
        return degraded_verdict()


CoverageResult = Parsed | Malformed


def degraded_verdict() -> CoverageVerdict:
    """Verdict used when the judgment could not be decoded."""
    return CoverageVerdict(
        is_sufficient=False, missing_points=[], follow_up_queries=[],
    )


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

_COVERAGE_PROMPT = """You are a research coverage evaluator.

Decide whether the research summary below fully answers the research \
question. If it does not, list what is missing and propose web search \
queries that would find it.

Respond with ONLY valid JSON (no markdown, no explanation):
{{
  "is_sufficient": true or false,
  "missing_points": ["Point the summary does not cover", ...],
  "follow_up_queries": ["Search query to fill the gap", ...]
}}

Guidelines:
- "is_sufficient" = every part of the question is answered with specific, \
sourced facts
- Leave both lists empty when the summary is sufficient
- Order follow-up queries from most to least useful

Research question:
{query}

Research summary:
{summary}"""


def build_coverage_prompt(query: str, summary: str) -> str:
    return _COVERAGE_PROMPT.format(query=query, summary=summary or "(empty)")


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def decode_verdict(text: str) -> CoverageResult:
    """
    Decode an evaluator reply into Parsed or Malformed.

    A single surrounding markdown code fence is stripped first; the content
    must then be a JSON object with all three keys. Never raises.
    """
    body = (text or "").strip()
    fenced = _FENCE_RE.match(body)
    if fenced:
        body = fenced.group(1)

    try:
        return Parsed(CoverageVerdict.model_validate_json(body))
    except PydanticValidationError as e:
        logger.warning(
            "Malformed coverage judgment (%d errors): %r",
            e.error_count(), body[:200],
        )
        return Malformed(text or "")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def evaluate_coverage(
    query: str,
    current_summary: str,
    *,
    client: GenerationClient,
    model: str | None = None,
) -> CoverageResult:
    """
    Ask the model whether `current_summary` answers `query`.

    Raises:
        ConfigurationError, UpstreamError: From the generation client.
    """
    result = await client.generate(
        build_coverage_prompt(query, current_summary),
        frozenset(),
        model=model,
        json_output=True,
    )

    outcome = decode_verdict(result.text)
    if isinstance(outcome, Parsed):
        logger.info(
            "Coverage: sufficient=%s, missing=%d, follow_ups=%d",
            outcome.verdict.is_sufficient,
            len(outcome.verdict.missing_points),
            len(outcome.verdict.follow_up_queries),
        )
    return outcome
