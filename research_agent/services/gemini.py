# =============================================================================
# Gemini Generation Client — generateContent with Search and URL Context
# =============================================================================
#
# The single point where this service talks to the network. Every stage
# (search, retrieval, coverage evaluation) goes through `generate()`:
#
#   prompt + capability set  ──▶  POST /models/{model}:generateContent
#                            ◀──  text + grounding metadata + URL metadata
#
# Capabilities map to Gemini tools:
#   Capability.RETRIEVAL → {"url_context": {}}
#   Capability.SEARCH    → {"google_search": {}}
#
# DESIGN DECISION: Raw REST via httpx rather than a vendor SDK. The
# service needs exactly one endpoint and must surface the upstream status
# code and body verbatim on failure (UpstreamError).
#
# DESIGN DECISION: The response payload is decoded through Pydantic models.
# Gemini's REST API returns camelCase keys; older docs and proxies use
# snake_case. Both spellings are accepted via AliasChoices.
#
# No retries, no streaming: one request, one response.
#
# ARCHITECTURE:
#   GenerationClient (Protocol)
#   ├── GeminiClient            — httpx implementation
#   │   └── generate()
#   └── get_generation_client() — lazy singleton built from settings
# =============================================================================

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from research_agent.config import settings
from research_agent.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Public Data Structures
# ---------------------------------------------------------------------------


class Capability(str, Enum):
    """Provider-side tools that can be attached to a generation request."""

    RETRIEVAL = "url_context"
    SEARCH = "google_search"


# Tool order in the request body: URL context first, then search.
_TOOL_ORDER = (Capability.RETRIEVAL, Capability.SEARCH)


@dataclass
class CitedSource:
    """A web source cited by Google Search grounding."""

    title: str | None
    uri: str | None


@dataclass
class SearchMetadata:
    """Search queries the model issued and the sources it cited."""

    queries: list[str] = field(default_factory=list)
    cited_sources: list[CitedSource] = field(default_factory=list)


@dataclass
class UrlRetrieval:
    """One URL Context fetch attempt reported by the provider."""

    url: str | None
    status: str | None


@dataclass
class GenerationResult:
    """
    Normalised response from one generateContent call.

    `raw` keeps the decoded JSON payload so callers can fall back to it
    when the model produced no text.
    """

    text: str
    model: str
    search_metadata: SearchMetadata | None = None
    retrieval_metadata: list[UrlRetrieval] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Wire Schema — generateContent response
# ---------------------------------------------------------------------------


class _Wire(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _WebSource(_Wire):
    uri: str | None = None
    title: str | None = None


class _GroundingChunk(_Wire):
    web: _WebSource | None = None


class _GroundingMetadata(_Wire):
    web_search_queries: list[str] | None = Field(
        default=None,
        validation_alias=AliasChoices("webSearchQueries", "web_search_queries"),
    )
    grounding_chunks: list[_GroundingChunk] | None = Field(
        default=None,
        validation_alias=AliasChoices("groundingChunks", "grounding_chunks"),
    )


class _UrlMetadata(_Wire):
    retrieved_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("retrievedUrl", "retrieved_url"),
    )
    url_retrieval_status: str | None = Field(
        default=None,
        validation_alias=AliasChoices("urlRetrievalStatus", "url_retrieval_status"),
    )


class _UrlContextMetadata(_Wire):
    url_metadata: list[_UrlMetadata] | None = Field(
        default=None,
        validation_alias=AliasChoices("urlMetadata", "url_metadata"),
    )


class _Part(_Wire):
    text: str | None = None


class _Content(_Wire):
    parts: list[_Part] | None = None


class _Candidate(_Wire):
    content: _Content | None = None
    grounding_metadata: _GroundingMetadata | None = Field(
        default=None,
        validation_alias=AliasChoices("groundingMetadata", "grounding_metadata"),
    )
    url_context_metadata: _UrlContextMetadata | None = Field(
        default=None,
        validation_alias=AliasChoices("urlContextMetadata", "url_context_metadata"),
    )


class _GenerateContentResponse(_Wire):
    candidates: list[_Candidate] | None = None


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class GenerationClient(Protocol):
    """
    Interface the research stages depend on.

    Tests substitute fakes with the same `generate()` signature.
    """

    async def generate(
        self,
        prompt: str,
        capabilities: frozenset[Capability] = frozenset(),
        *,
        model: str | None = None,
        json_output: bool = False,
    ) -> GenerationResult:
        """
        Run one generation.

        Args:
            prompt: Full user prompt text.
            capabilities: Provider tools to enable for this call.
            model: Model id override (default from config).
            json_output: Ask the provider for an application/json response.

        Raises:
            ConfigurationError: No API key is configured.
            UpstreamError: The provider returned a non-success status.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation: Gemini REST
# ---------------------------------------------------------------------------


class GeminiClient:
    """
    Gemini generateContent client over httpx.

    Constructor arguments default to the values in settings. The API key is
    checked when a request is made, so a client can be built before the
    credential is known and fail only when used.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = settings.google_api_key if api_key is None else api_key
        self._model = model or settings.gemini_model
        self._base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self._timeout = timeout or settings.request_timeout_seconds
        self._transport = transport

        logger.info(
            "Initialized GeminiClient (model=%s, base_url=%s)",
            self._model, self._base_url,
        )

    async def generate(
        self,
        prompt: str,
        capabilities: frozenset[Capability] = frozenset(),
        *,
        model: str | None = None,
        json_output: bool = False,
    ) -> GenerationResult:
        """Send one generateContent request and normalise the response."""
        if not self._api_key:
            raise ConfigurationError("GOOGLE_API_KEY is not set")

        resolved_model = model or self._model
        endpoint = f"{self._base_url}/models/{resolved_model}:generateContent"
        body = build_request_body(prompt, capabilities, json_output=json_output)

        start = time.monotonic()
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport,
        ) as client:
            response = await client.post(
                endpoint,
                json=body,
                headers={
                    "Content-Type": "application/json",
                    "x-goog-api-key": self._api_key,
                },
            )
        elapsed_ms = int((time.monotonic() - start) * 1000)

        if not response.is_success:
            logger.warning(
                "Gemini request failed: status=%d model=%s (%dms)",
                response.status_code, resolved_model, elapsed_ms,
            )
            raise UpstreamError(response.status_code, response.text)

        logger.info(
            "Gemini request ok: model=%s tools=%s (%dms)",
            resolved_model,
            ",".join(c.value for c in _ordered(capabilities)) or "none",
            elapsed_ms,
        )

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(response.status_code, response.text) from e

        return parse_generation_response(
            payload, model=resolved_model, status_code=response.status_code,
        )


# ---------------------------------------------------------------------------
# Request / Response Helpers
# ---------------------------------------------------------------------------


def _ordered(capabilities: frozenset[Capability]) -> list[Capability]:
    return [c for c in _TOOL_ORDER if c in capabilities]


def build_request_body(
    prompt: str,
    capabilities: frozenset[Capability] = frozenset(),
    json_output: bool = False,
) -> dict[str, Any]:
    """Build the generateContent JSON body."""
    body: dict[str, Any] = {
        "contents": [{"parts": [{"text": prompt}]}],
    }
    tools = [{c.value: {}} for c in _ordered(capabilities)]
    if tools:
        body["tools"] = tools
    if json_output:
        body["generationConfig"] = {"responseMimeType": "application/json"}
    return body


def parse_generation_response(
    payload: Any,
    model: str,
    status_code: int = 200,
) -> GenerationResult:
    """
    Decode a generateContent payload into a GenerationResult.

    Only the first candidate is read. Text parts are joined with newlines.

    Raises:
        UpstreamError: If the payload does not match the response schema.
    """
    raw = payload if isinstance(payload, dict) else {"payload": payload}
    try:
        decoded = _GenerateContentResponse.model_validate(payload)
    except PydanticValidationError as e:
        raise UpstreamError(status_code, f"Unexpected response shape: {e}") from e

    candidate = decoded.candidates[0] if decoded.candidates else None
    if candidate is None:
        return GenerationResult(text="", model=model, raw=raw)

    parts = candidate.content.parts if candidate.content else None
    text = "\n".join(p.text for p in parts or [] if p.text)

    search_metadata: SearchMetadata | None = None
    grounding = candidate.grounding_metadata
    if grounding is not None:
        search_metadata = SearchMetadata(
            queries=list(grounding.web_search_queries or []),
            cited_sources=[
                CitedSource(title=chunk.web.title, uri=chunk.web.uri)
                for chunk in grounding.grounding_chunks or []
                if chunk.web is not None
            ],
        )

    url_context = candidate.url_context_metadata
    retrieval_metadata = [
        UrlRetrieval(url=m.retrieved_url, status=m.url_retrieval_status)
        for m in (url_context.url_metadata or [] if url_context else [])
    ]

    return GenerationResult(
        text=text,
        model=model,
        search_metadata=search_metadata,
        retrieval_metadata=retrieval_metadata,
        raw=raw,
    )


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_client: GeminiClient | None = None


def get_generation_client() -> GeminiClient:
    """
    Return the process-wide GeminiClient, built from settings on first use.

    Also used as a FastAPI dependency; tests replace it through
    `app.dependency_overrides`.
    """
    global _client
    if _client is None:
        _client = GeminiClient(
            api_key=settings.google_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
            timeout=settings.request_timeout_seconds,
        )
    return _client
