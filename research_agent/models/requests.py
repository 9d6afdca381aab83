# =============================================================================
# Tool Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Input shapes for the three tools. FastAPI validates request bodies
# against these before any handler runs, so malformed input (blank query,
# zero or more than 20 URLs) becomes a 422 without a Gemini call.
#
# The same models provide the JSON input schemas listed by GET /tools.
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from research_agent.errors import ValidationError
from research_agent.services.urls import coerce_url_list

_URLS_DESCRIPTION = "One URL string or an array of URLs (max 20)"


def _require_query(value: str | None) -> str | None:
    if value is None:
        return None
    if not value.strip():
        raise ValidationError("'query' must be a non-empty string")
    return value.strip()


class AnalyzeUrlsRequest(BaseModel):
    """
    Request body for POST /tools/analyze_urls.

    Example:
        {
            "urls": ["https://example.com/report"],
            "instruction": "List the key findings",
            "use_google_search": false
        }
    """

    urls: str | list[str] = Field(..., description=_URLS_DESCRIPTION)
    instruction: str | None = Field(
        default=None,
        description="Optional instruction or task description",
    )
    model: str | None = Field(
        default=None,
        description="Gemini model id (e.g., gemini-2.5-flash)",
    )
    use_google_search: bool = Field(
        default=False,
        description=(
            "Enable grounding with Google Search (adds google_search tool "
            "alongside URL context)"
        ),
    )

    @field_validator("urls")
    @classmethod
    def _coerce_urls(cls, value: str | list[str]) -> list[str]:
        return coerce_url_list(value)


class WebSearchRequest(BaseModel):
    """Request body for POST /tools/web_search."""

    query: str = Field(
        ...,
        description="What to search the web for",
        examples=["climate policy 2024"],
    )
    instruction: str | None = Field(
        default=None,
        description="Optional instruction placed before the search prompt",
    )
    model: str | None = Field(
        default=None,
        description="Gemini model id (e.g., gemini-2.5-flash)",
    )

    @field_validator("query")
    @classmethod
    def _check_query(cls, value: str) -> str:
        return _require_query(value)


class ResearchRequest(BaseModel):
    """
    Request body for POST /tools/research_or_scrape.

    Give `urls` to read specific pages (single call, no search), or `query`
    to run the iterative research loop. `max_iterations` is clamped to
    [1, 5] by the loop; out-of-range values are accepted here.
    """

    urls: str | list[str] | None = Field(
        default=None, description=_URLS_DESCRIPTION,
    )
    query: str | None = Field(
        default=None,
        description="Research question; used when no URLs are given",
    )
    instruction: str | None = Field(
        default=None,
        description="Optional instruction or task description",
    )
    model: str | None = Field(
        default=None,
        description="Gemini model id (e.g., gemini-2.5-flash)",
    )
    max_iterations: int | None = Field(
        default=None,
        description="Research iterations, 1-5 (default 3)",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"query": "climate policy 2024", "max_iterations": 3},
                {"urls": ["https://example.com/a", "https://example.com/b"]},
            ]
        }
    )

    @field_validator("urls")
    @classmethod
    def _coerce_urls(cls, value: str | list[str] | None) -> list[str] | None:
        # Only an omitted field means "no URLs"; an empty value is zero URLs.
        if value is None:
            return None
        return coerce_url_list(value)

    @field_validator("query")
    @classmethod
    def _check_query(cls, value: str | None) -> str | None:
        # Blank counts as absent; _urls_or_query rejects the empty request.
        if value is None or not value.strip():
            return None
        return value.strip()

    @model_validator(mode="after")
    def _urls_or_query(self) -> "ResearchRequest":
        if self.urls is None and not self.query:
            raise ValidationError("Either 'urls' or 'query' must be provided")
        return self
