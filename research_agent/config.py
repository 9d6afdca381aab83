# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# All runtime configuration lives in one `Settings` object that is built
# once at startup. Values load in this priority order (highest first):
#   1. Environment variables (e.g., `GOOGLE_API_KEY=...`)
#   2. Values from the .env file
#   3. Default values defined below
#
# The Gemini credential is read here and nowhere else. The client receives
# it as an explicit constructor argument (see services/gemini.py).
#
# USAGE:
#   from research_agent.config import settings
#   print(settings.gemini_model)
# =============================================================================

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Everything except the API key has a usable default.
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_name: str = "Research Agent"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Gemini — Generation Service
    # -------------------------------------------------------------------------
    # GOOGLE_API_KEY has no default. Without it every tool call fails with
    # a ConfigurationError before any request is sent.
    #
    # gemini_model is the default model id; each tool call may override it.
    # -------------------------------------------------------------------------
    google_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-2.5-flash"
    request_timeout_seconds: float = 120.0

    # -------------------------------------------------------------------------
    # Research Loop
    # -------------------------------------------------------------------------
    # default_research_iterations: used when the caller gives no budget.
    # Whatever the source, the effective budget is clamped to [1, 5].
    #
    # The hard limits (20 URLs per request, 10 URLs read per iteration) are
    # constants, not settings (see services/urls.py, agents/orchestrator.py).
    # -------------------------------------------------------------------------
    default_research_iterations: int = 3

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Create and cache a Settings instance.

    In tests, override with FastAPI's dependency_overrides or build a
    Settings(...) directly and pass it to the client.
    """
    return Settings()


settings = get_settings()
