"""Operations API endpoints."""

from fastapi import APIRouter
from pydantic import BaseModel

from clash_rule_tester import __version__

router = APIRouter(tags=["operations"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint - returns server status."""
    return HealthResponse(status="ok", version=__version__)
