"""Main API router combining all endpoints."""

from fastapi import APIRouter

from clash_rule_tester.api import match, operations

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(operations.router)
api_router.include_router(match.router)
