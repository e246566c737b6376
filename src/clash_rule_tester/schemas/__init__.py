"""Pydantic schemas for configs and match results."""

from clash_rule_tester.schemas.config import (
    ClashConfig,
    ConfigShapeError,
    HttpRuleProvider,
    InlineRuleProvider,
    RuleProvider,
    load_config,
    parse_config,
)
from clash_rule_tester.schemas.match import MatchRequest, MatchResponse, MatchResultSchema

__all__ = [
    "ClashConfig",
    "ConfigShapeError",
    "HttpRuleProvider",
    "InlineRuleProvider",
    "MatchRequest",
    "MatchResponse",
    "MatchResultSchema",
    "RuleProvider",
    "load_config",
    "parse_config",
]
