"""Rules engine: find the first Clash rule that applies to a domain."""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from clash_rule_tester.config import Settings, get_settings
from clash_rule_tester.metrics.definitions import EVALUATIONS_TOTAL, LOCAL_RULE_ERRORS
from clash_rule_tester.providers.fetcher import HttpFetcher
from clash_rule_tester.providers.store import ProviderStore
from clash_rule_tester.resolver import NameResolver, create_resolver
from clash_rule_tester.rules.conditions import (
    evaluate_cidr,
    match_domain,
    match_domain_keyword,
    match_domain_suffix,
    normalize_domain,
)
from clash_rule_tester.rules.line import CATCH_ALL_KINDS, RuleKind, RuleLine, parse_rule_line
from clash_rule_tester.rules.selection import report_local_error, select_best_match
from clash_rule_tester.schemas.config import ClashConfig

logger = logging.getLogger(__name__)

# Provider behaviors whose lines may test the resolved address
ADDRESS_BEHAVIORS = frozenset({"ipcidr", "classical"})


@dataclass(frozen=True)
class MatchResult:
    """Result of a rule match."""

    domain: str
    matching_rule: str
    final_policy: str
    resolved_address: str | None = None
    sub_matching_rule: str | None = None


@dataclass(frozen=True)
class LineOutcome:
    """Result of evaluating one top-level rule line."""

    matched: bool
    sub_matching_rule: str | None = None


NO_MATCH = LineOutcome(matched=False)


class AddressLookup:
    """Resolve a domain at most once, in the background.

    The lookup starts as soon as it is created so it can overlap provider
    downloads; callers await get() only when an address is actually needed.
    """

    def __init__(self, resolver: NameResolver, domain: str):
        self.domain = domain
        self._task: asyncio.Task[str | None] = asyncio.create_task(resolver.resolve(domain))

    async def get(self) -> str | None:
        """Wait for the lookup and return the address, or None on failure."""
        try:
            return await self._task
        except Exception:
            logger.exception(f"Resolver raised while resolving {self.domain}")
            return None

    def close(self) -> None:
        """Release the lookup once the evaluation is over.

        A running lookup is cancelled; a finished one has its exception read
        so a failed resolution is not reported as never retrieved.
        """
        if not self._task.done():
            self._task.cancel()
        elif not self._task.cancelled():
            self._task.exception()


class RuleEngine:
    """Evaluate Clash rule lists against domains.

    The provider store is shared across evaluations so repeated tests
    against the same provider URL download it only once.
    """

    def __init__(self, store: ProviderStore, resolver: NameResolver):
        self.store = store
        self.resolver = resolver

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RuleEngine":
        """Build an engine with an httpx fetcher and the configured resolver."""
        settings = settings or get_settings()
        fetcher = HttpFetcher(
            timeout=settings.fetch_timeout,
            user_agent=settings.fetch_user_agent,
            max_bytes=settings.fetch_max_bytes,
        )
        return cls(ProviderStore(fetcher), create_resolver(settings))

    async def aclose(self) -> None:
        """Close HTTP clients owned by the fetcher and resolver."""
        for component in (self.store.fetcher, self.resolver):
            aclose = getattr(component, "aclose", None)
            if aclose is not None:
                await aclose()

    async def evaluate(
        self,
        config: ClashConfig | Mapping[str, Any],
        domain: str,
    ) -> MatchResult | None:
        """Find the first rule in config that applies to domain.

        Rules are evaluated strictly in declaration order and the first
        matching line wins. The domain is resolved at most once, and only
        if the rule list contains IP-CIDR or RULE-SET lines.

        Args:
            config: Validated config, or a parsed config mapping
            domain: Domain to test

        Returns:
            MatchResult for the first matching rule, or None if nothing matched

        Raises:
            ConfigShapeError: If config does not have the expected shape
            ProviderError: If a referenced provider cannot be fetched or parsed
            ValueError: If domain is empty
        """
        config = ClashConfig.from_mapping(config)
        target = normalize_domain(domain)
        if not target:
            raise ValueError("Domain must not be empty")

        lines = [line for line in map(parse_rule_line, config.rules) if line is not None]
        lookup: AddressLookup | None = None
        if any(line.needs_address for line in lines):
            lookup = AddressLookup(self.resolver, target)

        try:
            for line in lines:
                outcome = await self._evaluate_line(config, line, target, lookup)
                if outcome.matched:
                    result = MatchResult(
                        domain=domain,
                        resolved_address=await lookup.get() if lookup else None,
                        matching_rule=line.text,
                        sub_matching_rule=outcome.sub_matching_rule,
                        final_policy=line.policy,
                    )
                    EVALUATIONS_TOTAL.labels(result="matched").inc()
                    logger.info(
                        f"{domain}: matched '{line.text}' -> {line.policy} "
                        f"(provider rule: {outcome.sub_matching_rule or '-'})"
                    )
                    return result

            if lookup:
                await lookup.get()
        except Exception:
            EVALUATIONS_TOTAL.labels(result="error").inc()
            raise
        finally:
            if lookup:
                lookup.close()

        EVALUATIONS_TOTAL.labels(result="no_match").inc()
        logger.info(f"{domain}: no rule matched ({len(lines)} rules evaluated)")
        return None

    async def _evaluate_line(
        self,
        config: ClashConfig,
        line: RuleLine,
        domain: str,
        lookup: AddressLookup | None,
    ) -> LineOutcome:
        """Evaluate a single top-level rule line."""
        kind = line.kind

        if kind in CATCH_ALL_KINDS:
            return LineOutcome(matched=True)

        if kind is RuleKind.DOMAIN:
            return LineOutcome(matched=match_domain(domain, line.value or ""))

        if kind is RuleKind.DOMAIN_SUFFIX:
            return LineOutcome(matched=match_domain_suffix(domain, line.value or ""))

        if kind is RuleKind.DOMAIN_KEYWORD:
            return LineOutcome(matched=match_domain_keyword(domain, line.value or ""))

        if kind is RuleKind.IP_CIDR:
            address = await lookup.get() if lookup else None
            result = evaluate_cidr(line.value or "", address)
            if result.is_local_error:
                report_local_error(result, line.text, "cidr")
            return LineOutcome(matched=result.matched)

        if kind is RuleKind.RULE_SET:
            return await self._evaluate_rule_set(config, line, domain, lookup)

        logger.debug(f"Skipping unsupported rule type '{line.type_name}': {line.text}")
        return NO_MATCH

    async def _evaluate_rule_set(
        self,
        config: ClashConfig,
        line: RuleLine,
        domain: str,
        lookup: AddressLookup | None,
    ) -> LineOutcome:
        """Evaluate a RULE-SET line against its provider's rules."""
        name = line.value or ""
        provider = config.rule_providers.get(name)
        if provider is None:
            LOCAL_RULE_ERRORS.labels(kind="provider_missing").inc()
            logger.warning(f"RULE-SET references unknown provider '{name}' in rule: {line.text}")
            return NO_MATCH

        rules = await self.store.get_rules(name, provider)

        address = None
        if provider.behavior in ADDRESS_BEHAVIORS and lookup is not None:
            address = await lookup.get()

        best = select_best_match(domain, address, rules, provider.behavior)
        if best is None:
            logger.debug(f"Provider '{name}': no rule matched {domain}")
            return NO_MATCH

        logger.debug(f"Provider '{name}': '{best.rule}' won with score {best.score}")
        return LineOutcome(matched=True, sub_matching_rule=best.rule)
