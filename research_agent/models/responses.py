# =============================================================================
# Tool Response Models — Pydantic V2 Schemas
# =============================================================================

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class ToolResponse(BaseModel):
    """Text output of any tool call, with its sources section appended."""

    text: str = Field(description="Tool output text")


class ToolInfo(BaseModel):
    """One entry of GET /tools."""

    name: str
    description: str
    input_schema: dict[str, Any]


class ToolListResponse(BaseModel):
    """Response for GET /tools."""

    tools: list[ToolInfo]
