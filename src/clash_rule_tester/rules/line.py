"""Top-level rule line parsing."""

from dataclasses import dataclass
from enum import Enum


class RuleKind(str, Enum):
    """Rule types understood by the engine."""

    DOMAIN = "DOMAIN"
    DOMAIN_SUFFIX = "DOMAIN-SUFFIX"
    DOMAIN_KEYWORD = "DOMAIN-KEYWORD"
    IP_CIDR = "IP-CIDR"
    RULE_SET = "RULE-SET"
    MATCH = "MATCH"
    FINAL = "FINAL"


# Kinds whose evaluation may need the domain's resolved address
ADDRESS_KINDS = frozenset({RuleKind.IP_CIDR, RuleKind.RULE_SET})

CATCH_ALL_KINDS = frozenset({RuleKind.MATCH, RuleKind.FINAL})

_KINDS_BY_NAME = {kind.value: kind for kind in RuleKind}


@dataclass(frozen=True)
class RuleLine:
    """A parsed ``TYPE,VALUE,POLICY`` directive."""

    text: str
    type_name: str
    kind: RuleKind | None
    value: str | None
    policy: str

    @property
    def needs_address(self) -> bool:
        """Whether evaluating this line may require a resolved address."""
        return self.kind in ADDRESS_KINDS


def parse_rule_line(text: str) -> RuleLine | None:
    """Parse a top-level rule directive.

    The policy is always the last comma-separated field. Catch-all rules
    (``MATCH``/``FINAL``) carry no value. Unknown rule types are kept with
    ``kind=None`` so callers can skip them.

    Returns:
        The parsed line, or None if it has fewer than two fields
    """
    parts = [part.strip() for part in text.split(",")]
    if len(parts) < 2:
        return None

    type_name = parts[0].upper()
    kind = _KINDS_BY_NAME.get(type_name)
    value = None if kind in CATCH_ALL_KINDS else parts[1]

    return RuleLine(
        text=text,
        type_name=type_name,
        kind=kind,
        value=value,
        policy=parts[-1],
    )
