"""Rule condition matchers for domains and addresses."""

import ipaddress
import logging
import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

logger = logging.getLogger(__name__)


class CandidateOutcome(str, Enum):
    """Outcome of testing one candidate rule."""

    MATCHED = "matched"
    NOT_MATCHED = "not_matched"
    LOCAL_ERROR = "local_error"


class PatternForm(str, Enum):
    """Domain pattern forms, in precedence order."""

    EXACT = "exact"
    EAGER_SUFFIX = "eager_suffix"  # +.example.com
    SUFFIX = "suffix"  # .example.com
    WILDCARD = "wildcard"  # *.example.com


@dataclass(frozen=True)
class CandidateResult:
    """Result of testing a candidate rule against a domain or address.

    ``literal`` is the part of the pattern that was compared (the suffix for
    suffix forms, the pattern without ``*`` for wildcards) and
    ``root_match`` is set when an eager-suffix pattern matched the bare
    root domain.
    """

    outcome: CandidateOutcome
    form: PatternForm | None = None
    literal: str = ""
    root_match: bool = False
    error: str | None = None

    @property
    def matched(self) -> bool:
        """Check if the candidate matched."""
        return self.outcome is CandidateOutcome.MATCHED

    @property
    def is_local_error(self) -> bool:
        """Check if the candidate could not be evaluated."""
        return self.outcome is CandidateOutcome.LOCAL_ERROR


NOT_MATCHED = CandidateResult(CandidateOutcome.NOT_MATCHED)


def normalize_domain(domain: str) -> str:
    """Lower-case a domain and drop surrounding whitespace and a trailing root dot."""
    return domain.strip().lower().rstrip(".")


# Characters allowed in one label of a wildcard pattern
_WILDCARD_LABEL = re.compile(r"[a-z0-9_*-]+")


class InvalidWildcardError(ValueError):
    """Raised when a wildcard pattern contains anything but label characters and ``*``."""

    pass


@lru_cache(maxsize=4096)
def _wildcard_labels(pattern: str) -> tuple[tuple[str, ...], ...]:
    """Split a wildcard pattern into per-label tokens.

    Each ``*`` becomes a single-character token followed by a repeat token,
    so it stands for one or more characters and never crosses a dot.

    Raises:
        InvalidWildcardError: If a label is empty or holds other characters
    """
    labels = []
    for label in pattern.split("."):
        if not _WILDCARD_LABEL.fullmatch(label):
            raise InvalidWildcardError(
                f"label {label!r} may only contain letters, digits, '-', '_' and '*'"
            )
        tokens: list[str] = []
        for char in label:
            tokens.extend(("?", "*") if char == "*" else (char,))
        labels.append(tuple(tokens))
    return tuple(labels)


def _match_label(label: str, tokens: tuple[str, ...]) -> bool:
    """Glob-match one label in O(len(label) * len(tokens)) time."""
    i = j = 0
    star = -1
    resume = 0
    while i < len(label):
        if j < len(tokens) and tokens[j] != "*" and tokens[j] in ("?", label[i]):
            i += 1
            j += 1
        elif j < len(tokens) and tokens[j] == "*":
            star = j
            resume = i
            j += 1
        elif star != -1:
            j = star + 1
            resume += 1
            i = resume
        else:
            return False

    while j < len(tokens) and tokens[j] == "*":
        j += 1
    return j == len(tokens)


def _result(
    matched: bool, form: PatternForm, literal: str, root_match: bool = False
) -> CandidateResult:
    if not matched:
        return CandidateResult(CandidateOutcome.NOT_MATCHED, form=form, literal=literal)
    return CandidateResult(
        CandidateOutcome.MATCHED,
        form=form,
        literal=literal,
        root_match=root_match,
    )


def evaluate_domain_pattern(domain: str, pattern: str) -> CandidateResult:
    """Test a domain against a domain-style pattern.

    Pattern forms, in precedence order:
    - ``+.example.com`` matches example.com and any subdomain of it
    - ``.example.com`` matches any subdomain of example.com, not the root
    - ``*.example.com`` matches exactly one label in place of each ``*``
    - anything else must equal the domain

    Comparison is case-insensitive. A wildcard holding anything other than
    label characters and ``*`` is reported as a local error rather than raised.
    """
    domain = domain.lower()
    pattern = pattern.strip().lower()

    if pattern.startswith("+."):
        suffix = pattern[2:]
        if domain == suffix:
            return _result(True, PatternForm.EAGER_SUFFIX, suffix, root_match=True)
        return _result(domain.endswith(f".{suffix}"), PatternForm.EAGER_SUFFIX, suffix)

    if pattern.startswith("."):
        suffix = pattern[1:]
        return _result(domain.endswith(f".{suffix}"), PatternForm.SUFFIX, suffix)

    if "*" in pattern:
        literal = pattern.replace("*", "")
        try:
            pattern_labels = _wildcard_labels(pattern)
        except InvalidWildcardError as e:
            return CandidateResult(
                CandidateOutcome.LOCAL_ERROR,
                form=PatternForm.WILDCARD,
                literal=literal,
                error=f"Invalid wildcard pattern '{pattern}': {e}",
            )
        domain_labels = domain.split(".")
        matched = len(domain_labels) == len(pattern_labels) and all(
            _match_label(label, tokens)
            for label, tokens in zip(domain_labels, pattern_labels, strict=True)
        )
        return _result(matched, PatternForm.WILDCARD, literal)

    return _result(domain == pattern, PatternForm.EXACT, pattern)


def match_domain_pattern(domain: str, pattern: str) -> bool:
    """Match if domain satisfies a domain-style pattern."""
    return evaluate_domain_pattern(domain, pattern).matched


def match_domain(domain: str, value: str) -> bool:
    """Match if domain equals value (DOMAIN rules)."""
    return domain.lower() == value.strip().lower()


def match_domain_suffix(domain: str, suffix: str) -> bool:
    """Match if domain is suffix or a subdomain of it (DOMAIN-SUFFIX rules).

    google.com matches google.com and www.google.com but not
    content-google.com.
    """
    return match_domain_pattern(domain, f"+.{suffix.strip()}")


def match_domain_keyword(domain: str, keyword: str) -> bool:
    """Match if domain contains keyword (DOMAIN-KEYWORD rules)."""
    return keyword.strip().lower() in domain.lower()


def evaluate_cidr(cidr: str, address: str | None) -> CandidateResult:
    """Test whether an address falls inside a CIDR block.

    A missing address never matches. An invalid CIDR expression is reported
    as a local error rather than raised.
    """
    try:
        network = ipaddress.ip_network(cidr.strip(), strict=False)
    except ValueError as e:
        return CandidateResult(
            CandidateOutcome.LOCAL_ERROR,
            error=f"Invalid CIDR '{cidr}': {e}",
        )

    if not address:
        return NOT_MATCHED

    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        logger.debug(f"Ignoring unparseable address '{address}'")
        return NOT_MATCHED

    if ip in network:
        return CandidateResult(CandidateOutcome.MATCHED, literal=cidr.strip())
    return NOT_MATCHED


def match_cidr(cidr: str, address: str | None) -> bool:
    """Match if address is contained in cidr."""
    return evaluate_cidr(cidr, address).matched
