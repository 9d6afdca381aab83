# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the tool API. Internal stage results are
# plain dataclasses in the agents package.
# =============================================================================
