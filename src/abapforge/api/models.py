"""
Pydantic models for abapforge API requests and responses.
This module defines the request and response schemas used by the abapforge API.
"""

from typing import List

from pydantic import (
    BaseModel,
    Field,
)

from abapforge.core.schema import (
    AgentResult,
    Usage,
)


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class RunRequest(BaseModel):
    """A command plus the requirement it should work on."""

    command: str = Field(..., description="analyze, design, generate, test, review or workflow")
    requirement: str = Field(..., min_length=1, description="The development requirement")


class RunResponse(BaseModel):
    """Agent results in execution order with their combined token usage."""

    mode: str
    results: List[AgentResult]
    usage: Usage


class AgentInfo(BaseModel):
    """One agent role as listed by ``GET /agents``."""

    role: str
    name: str
    command: str
    description: str
    tools: List[str]
