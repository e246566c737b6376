"""Rule provider fetching and caching."""

from clash_rule_tester.providers.fetcher import ByteFetcher, HttpFetcher, TransportError
from clash_rule_tester.providers.store import (
    PayloadError,
    ProviderCacheEntry,
    ProviderError,
    ProviderStore,
    parse_provider_payload,
)

__all__ = [
    "ByteFetcher",
    "HttpFetcher",
    "PayloadError",
    "ProviderCacheEntry",
    "ProviderError",
    "ProviderStore",
    "TransportError",
    "parse_provider_payload",
]
