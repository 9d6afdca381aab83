# =============================================================================
# Error Taxonomy
# =============================================================================
#
#   ConfigurationError — no Gemini credential configured. Fatal, never retried.
#   UpstreamError      — Gemini answered with a non-success status. Carries
#                        the status code and raw body, never retried.
#   ValidationError    — malformed caller input, raised before any stage runs.
#
# A malformed coverage judgment is NOT an error: the evaluator returns a
# `Malformed` value instead (see agents/coverage.py).
#
# The API layer maps these to HTTP status codes (see api/tools.py).
# =============================================================================

from __future__ import annotations


class ResearchAgentError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(ResearchAgentError):
    """Raised when a required credential or setting is missing."""


class UpstreamError(ResearchAgentError):
    """Raised when the generation service returns a non-success response."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Gemini API error {status_code}: {body}")


class ValidationError(ResearchAgentError, ValueError):
    """
    Raised for malformed caller input (blank query, zero or too many URLs).

    Subclasses ValueError so Pydantic field validators surface it as a
    regular validation failure (HTTP 422 in FastAPI).
    """
