"""Prometheus metrics definitions for the clash rule tester."""

from prometheus_client import Counter, Histogram

# HTTP Request metrics
REQUEST_TOTAL = Counter(
    "clash_rule_tester_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code", "outcome"],  # outcome: match result or none
)

REQUEST_DURATION = Histogram(
    "clash_rule_tester_request_duration_seconds",
    "HTTP request duration in seconds, including provider downloads",
    ["endpoint", "outcome"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Rule evaluation metrics
EVALUATIONS_TOTAL = Counter(
    "clash_rule_tester_evaluations_total",
    "Total rule evaluations",
    ["result"],  # matched, no_match, error
)

LOCAL_RULE_ERRORS = Counter(
    "clash_rule_tester_local_rule_errors_total",
    "Rule candidates skipped because of a local, non-fatal error",
    ["kind"],  # cidr, wildcard, provider_missing
)

# Rule provider metrics
PROVIDER_FETCHES_TOTAL = Counter(
    "clash_rule_tester_provider_fetches_total",
    "Total rule provider downloads",
    ["result"],  # success, failure
)

PROVIDER_CACHE_HITS = Counter(
    "clash_rule_tester_provider_cache_hits_total",
    "Rule provider lookups served from the cache",
)

PROVIDER_FETCH_DURATION = Histogram(
    "clash_rule_tester_provider_fetch_duration_seconds",
    "Rule provider download duration in seconds",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# Name resolution metrics
DNS_RESOLUTIONS_TOTAL = Counter(
    "clash_rule_tester_dns_resolutions_total",
    "Total name resolutions",
    ["result"],  # resolved, failed
)
