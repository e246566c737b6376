"""Clash rule tester Prometheus metrics."""

from clash_rule_tester.metrics.definitions import (
    DNS_RESOLUTIONS_TOTAL,
    EVALUATIONS_TOTAL,
    LOCAL_RULE_ERRORS,
    PROVIDER_CACHE_HITS,
    PROVIDER_FETCH_DURATION,
    PROVIDER_FETCHES_TOTAL,
    REQUEST_DURATION,
    REQUEST_TOTAL,
)
from clash_rule_tester.metrics.middleware import MetricsMiddleware

__all__ = [
    "MetricsMiddleware",
    "REQUEST_TOTAL",
    "REQUEST_DURATION",
    "EVALUATIONS_TOTAL",
    "LOCAL_RULE_ERRORS",
    "PROVIDER_FETCHES_TOTAL",
    "PROVIDER_CACHE_HITS",
    "PROVIDER_FETCH_DURATION",
    "DNS_RESOLUTIONS_TOTAL",
]
