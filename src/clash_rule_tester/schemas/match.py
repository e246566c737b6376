"""Match request and response schemas."""

from pydantic import BaseModel, ConfigDict, Field


class MatchRequest(BaseModel):
    """Schema for a rule test request."""

    config: str = Field(..., min_length=1, description="Clash configuration as YAML text")
    domain: str = Field(..., min_length=1, max_length=253, description="Domain to test")


class MatchResultSchema(BaseModel):
    """Schema for a single match result."""

    model_config = ConfigDict(from_attributes=True)

    domain: str
    resolved_address: str | None = None
    matching_rule: str
    sub_matching_rule: str | None = None
    final_policy: str


class MatchResponse(BaseModel):
    """Schema for a rule test response."""

    matched: bool
    result: MatchResultSchema | None = None
    message: str | None = None
