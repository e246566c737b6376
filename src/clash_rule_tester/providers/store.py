"""Rule provider store: fetch, parse and cache provider payloads."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime

import yaml

from clash_rule_tester.metrics.definitions import (
    PROVIDER_CACHE_HITS,
    PROVIDER_FETCH_DURATION,
    PROVIDER_FETCHES_TOTAL,
)
from clash_rule_tester.providers.fetcher import ByteFetcher
from clash_rule_tester.schemas.config import HttpRuleProvider, InlineRuleProvider

logger = logging.getLogger(__name__)


class PayloadError(ValueError):
    """Raised when a provider body does not have the expected shape."""

    pass


class ProviderError(Exception):
    """Raised when a rule provider cannot be fetched or parsed."""

    def __init__(self, provider_name: str, url: str | None, cause: Exception):
        self.provider_name = provider_name
        self.url = url
        self.cause = cause
        source = url or "inline payload"
        super().__init__(
            f'Provider "{provider_name}": failed to fetch or parse {source}: {cause}'
        )


@dataclass(frozen=True)
class ProviderCacheEntry:
    """Parsed rules for one provider source."""

    source: str
    rules: tuple[str, ...]
    fetched_at: datetime = field(default_factory=lambda: datetime.now(UTC))


def parse_yaml_payload(text: str) -> list[str]:
    """Parse a YAML provider body: a mapping with a ``payload`` list of strings."""
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise PayloadError(f"Invalid YAML: {e}") from e

    payload = document.get("payload") if isinstance(document, dict) else None
    if not isinstance(payload, list):
        raise PayloadError("YAML provider does not contain a valid 'payload' list")

    for index, item in enumerate(payload):
        if not isinstance(item, str):
            raise PayloadError(
                f"YAML provider payload item {index} is {type(item).__name__}, expected a string"
            )
    return payload


def parse_text_payload(text: str) -> list[str]:
    """Parse a text provider body: one rule per line, ``#`` comments skipped."""
    lines = (line.strip() for line in text.splitlines())
    return [line for line in lines if line and not line.startswith("#")]


def parse_provider_payload(body: bytes, payload_format: str = "yaml") -> list[str]:
    """Decode and parse a provider body according to its declared format.

    Raises:
        PayloadError: If the body is not UTF-8 text or has the wrong shape
    """
    try:
        text = body.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise PayloadError(f"Provider body is not valid UTF-8 text: {e}") from e

    if payload_format == "text":
        return parse_text_payload(text)
    return parse_yaml_payload(text)


class ProviderStore:
    """Fetches and caches rule provider payloads.

    http providers are cached by URL for the lifetime of the store; there is
    no expiry and no invalidation. Concurrent requests for the same uncached
    URL share a single download and receive the same rules or the same
    ProviderError. A failed download is not cached, so a later request tries
    again, but nothing is retried automatically.

    inline providers return their payload as-is without touching the cache.
    """

    def __init__(self, fetcher: ByteFetcher):
        self._fetcher = fetcher
        self._cache: dict[str, ProviderCacheEntry] = {}
        self._inflight: dict[str, asyncio.Task[tuple[str, ...]]] = {}

    @property
    def fetcher(self) -> ByteFetcher:
        """The byte fetcher used for http providers."""
        return self._fetcher

    def cached(self, url: str) -> ProviderCacheEntry | None:
        """Get the cache entry for a URL, if it has been loaded."""
        return self._cache.get(url)

    def __len__(self) -> int:
        return len(self._cache)

    async def get_rules(
        self,
        name: str,
        provider: HttpRuleProvider | InlineRuleProvider,
    ) -> list[str]:
        """Get the rule lines for a provider.

        Args:
            name: Provider name, used in error messages
            provider: Provider definition

        Returns:
            Provider rule lines in source order

        Raises:
            ProviderError: If an http provider cannot be fetched or parsed
        """
        if isinstance(provider, InlineRuleProvider):
            return list(provider.payload)
        return await self._get_http_rules(name, provider)

    async def _get_http_rules(self, name: str, provider: HttpRuleProvider) -> list[str]:
        url = provider.url

        entry = self._cache.get(url)
        if entry is not None:
            PROVIDER_CACHE_HITS.inc()
            logger.debug(f"Provider '{name}': cache hit for {url}")
            return list(entry.rules)

        # No await between the lookup and the registration, so concurrent
        # callers on this event loop always see the same in-flight task.
        task = self._inflight.get(url)
        if task is None:
            task = asyncio.create_task(self._download(name, provider))
            self._inflight[url] = task
            task.add_done_callback(lambda t: self._finish_download(url, t))
        else:
            logger.debug(f"Provider '{name}': joining in-flight download of {url}")

        # Shield so one caller giving up does not cancel the shared download
        return list(await asyncio.shield(task))

    def _finish_download(self, url: str, task: asyncio.Task[tuple[str, ...]]) -> None:
        """Forget a finished download and mark its exception as retrieved."""
        self._inflight.pop(url, None)
        if not task.cancelled():
            task.exception()

    async def _download(self, name: str, provider: HttpRuleProvider) -> tuple[str, ...]:
        url = provider.url
        logger.info(f"Provider '{name}': downloading {url}")

        start_time = time.perf_counter()
        try:
            body = await self._fetcher.fetch(url)
        except Exception as e:
            PROVIDER_FETCHES_TOTAL.labels(result="failure").inc()
            logger.warning(f"Provider '{name}': download of {url} failed: {e}")
            raise ProviderError(name, url, e) from e
        finally:
            PROVIDER_FETCH_DURATION.observe(time.perf_counter() - start_time)

        try:
            rules = tuple(parse_provider_payload(body, provider.format))
        except PayloadError as e:
            PROVIDER_FETCHES_TOTAL.labels(result="failure").inc()
            logger.warning(f"Provider '{name}': could not parse {url}: {e}")
            raise ProviderError(name, url, e) from e

        self._cache[url] = ProviderCacheEntry(source=url, rules=rules)
        PROVIDER_FETCHES_TOTAL.labels(result="success").inc()
        logger.info(f"Provider '{name}': loaded {len(rules)} rules from {url}")
        return rules
