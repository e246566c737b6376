"""Best-match selection within a rule provider's rule list.

Provider lists are unordered rule sets, so the most specific matching line
wins rather than the first one. Scores are banded by match kind and ranked
within a band by the length of the compared literal:

- exact domain, or ``+.`` pattern matching the root domain: 4000 + length
- wildcard pattern: 3000 + pattern length without ``*``
- suffix match on a subdomain: 2000 + length
- keyword or CIDR match: 1000 + length

Ties go to the line that appears first.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from clash_rule_tester.metrics.definitions import LOCAL_RULE_ERRORS
from clash_rule_tester.rules.conditions import (
    CandidateResult,
    PatternForm,
    evaluate_cidr,
    evaluate_domain_pattern,
    match_domain,
    match_domain_keyword,
)
from clash_rule_tester.rules.line import RuleKind

logger = logging.getLogger(__name__)

EXACT_BAND = 4000
WILDCARD_BAND = 3000
SUFFIX_BAND = 2000
KEYWORD_BAND = 1000
CIDR_BAND = 1000


@dataclass(frozen=True)
class ScoredRule:
    """A provider rule line that matched, with its specificity score."""

    rule: str
    score: int


def report_local_error(result: CandidateResult, rule: str, kind: str) -> None:
    """Log a non-fatal rule error and count it."""
    LOCAL_RULE_ERRORS.labels(kind=kind).inc()
    logger.warning(f"{result.error} in rule: {rule}")


def score_domain_line(domain: str, line: str) -> int | None:
    """Score a ``domain`` behavior line, or None if it does not match."""
    result = evaluate_domain_pattern(domain, line)
    if result.is_local_error:
        report_local_error(result, line, "wildcard")
        return None
    if not result.matched:
        return None

    if result.form is PatternForm.WILDCARD:
        return WILDCARD_BAND + len(result.literal)
    if result.form is PatternForm.EXACT or result.root_match:
        return EXACT_BAND + len(result.literal)
    return SUFFIX_BAND + len(result.literal)


def score_ipcidr_line(address: str | None, line: str) -> int | None:
    """Score an ``ipcidr`` behavior line, or None if it does not match."""
    result = evaluate_cidr(line, address)
    if result.is_local_error:
        report_local_error(result, line, "cidr")
        return None
    if not result.matched:
        return None
    return CIDR_BAND + len(result.literal)


def score_classical_line(domain: str, address: str | None, line: str) -> int | None:
    """Score a ``classical`` behavior ``TYPE,VALUE[,...]`` line.

    Nested RULE-SET references are not supported and never match.
    """
    parts = [part.strip() for part in line.split(",")]
    if len(parts) < 2 or not parts[1]:
        return None

    rule_type = parts[0].upper()
    value = parts[1].lower()

    if rule_type == RuleKind.DOMAIN.value:
        return EXACT_BAND + len(value) if match_domain(domain, value) else None

    if rule_type == RuleKind.DOMAIN_SUFFIX.value:
        if domain == value:
            return EXACT_BAND + len(value)
        if domain.endswith(f".{value}"):
            return SUFFIX_BAND + len(value)
        return None

    if rule_type == RuleKind.DOMAIN_KEYWORD.value:
        return KEYWORD_BAND + len(value) if match_domain_keyword(domain, value) else None

    if rule_type == RuleKind.IP_CIDR.value:
        if address is None:
            return None
        return score_ipcidr_line(address, parts[1])

    logger.debug(f"Unsupported provider rule type '{rule_type}': {line}")
    return None


def select_best_match(
    domain: str,
    address: str | None,
    rules: Iterable[str],
    behavior: str = "classical",
) -> ScoredRule | None:
    """Pick the highest-scoring rule in a provider's rule list.

    Args:
        domain: Domain being tested
        address: Resolved address, if any
        rules: Provider rule lines
        behavior: Provider behavior (domain, ipcidr or classical)

    Returns:
        The winning rule and its score, or None if no line matches
    """
    domain = domain.lower()
    if behavior == "ipcidr" and address is None:
        return None

    best: ScoredRule | None = None
    for line in rules:
        if not line or not line.strip():
            continue

        if behavior == "domain":
            score = score_domain_line(domain, line)
        elif behavior == "ipcidr":
            score = score_ipcidr_line(address, line)
        else:
            score = score_classical_line(domain, address, line)

        if score is not None and (best is None or score > best.score):
            best = ScoredRule(rule=line, score=score)

    return best
