"""Rule matching API endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Request, status

from clash_rule_tester.providers.store import ProviderError
from clash_rule_tester.rules.engine import RuleEngine
from clash_rule_tester.schemas.config import ConfigShapeError, parse_config
from clash_rule_tester.schemas.match import MatchRequest, MatchResponse, MatchResultSchema

logger = logging.getLogger(__name__)

router = APIRouter(tags=["match"])

# Outcomes recorded on request.state for the access log and request metrics
OUTCOME_MATCHED = "matched"
OUTCOME_NO_MATCH = "no_match"
OUTCOME_INVALID_CONFIG = "invalid_config"
OUTCOME_PROVIDER_ERROR = "provider_error"
OUTCOME_INVALID_DOMAIN = "invalid_domain"


def get_engine(request: Request) -> RuleEngine:
    """Get the application's shared rule engine."""
    return request.app.state.engine


def record_outcome(request: Request, domain: str, outcome: str) -> None:
    """Remember which domain was tested and how the evaluation ended."""
    request.state.match_domain = domain
    request.state.match_outcome = outcome


@router.post("/match", response_model=MatchResponse)
async def match_domain(data: MatchRequest, request: Request) -> MatchResponse:
    """Find the rule that applies to a domain.

    The config is parsed from YAML on every request; rule providers are
    cached for the lifetime of the server.
    """
    engine = get_engine(request)

    try:
        config = parse_config(data.config)
        result = await engine.evaluate(config, data.domain)
    except ConfigShapeError as e:
        record_outcome(request, data.domain, OUTCOME_INVALID_CONFIG)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e
    except ProviderError as e:
        record_outcome(request, data.domain, OUTCOME_PROVIDER_ERROR)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e),
        ) from e
    except ValueError as e:
        record_outcome(request, data.domain, OUTCOME_INVALID_DOMAIN)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e

    if result is None:
        record_outcome(request, data.domain, OUTCOME_NO_MATCH)
        return MatchResponse(
            matched=False,
            message=f"No rule matched for domain: {data.domain}",
        )

    record_outcome(request, data.domain, OUTCOME_MATCHED)
    return MatchResponse(matched=True, result=MatchResultSchema.model_validate(result))
