"""Rules engine for Clash rule evaluation."""

from clash_rule_tester.rules.conditions import (
    CandidateOutcome,
    CandidateResult,
    evaluate_cidr,
    evaluate_domain_pattern,
    match_cidr,
    match_domain,
    match_domain_keyword,
    match_domain_pattern,
    match_domain_suffix,
)
from clash_rule_tester.rules.engine import MatchResult, RuleEngine
from clash_rule_tester.rules.line import RuleKind, RuleLine, parse_rule_line
from clash_rule_tester.rules.selection import ScoredRule, select_best_match

__all__ = [
    "CandidateOutcome",
    "CandidateResult",
    "MatchResult",
    "RuleEngine",
    "RuleKind",
    "RuleLine",
    "ScoredRule",
    "evaluate_cidr",
    "evaluate_domain_pattern",
    "match_cidr",
    "match_domain",
    "match_domain_keyword",
    "match_domain_pattern",
    "match_domain_suffix",
    "parse_rule_line",
    "select_best_match",
]
