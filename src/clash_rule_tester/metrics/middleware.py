"""Prometheus request metrics for the rule tester API."""

import time
from collections.abc import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from clash_rule_tester.metrics.definitions import REQUEST_DURATION, REQUEST_TOTAL

# Not counted in the request metrics
UNMETERED_PATHS = frozenset({"/metrics", "/api/v1/health"})

# Outcome label for requests that did not evaluate a domain
NO_OUTCOME = "none"


def route_template(request: Request) -> str:
    """Route path pattern for the request, falling back to its URL path."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    if path:
        return path
    return request.url.path.rstrip("/") or "/"


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count and time API requests, labelled by the match outcome they produced."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in UNMETERED_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response: Response = await call_next(request)
        elapsed = time.perf_counter() - started

        endpoint = route_template(request)
        outcome = getattr(request.state, "match_outcome", None) or NO_OUTCOME
        REQUEST_TOTAL.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
            outcome=outcome,
        ).inc()
        REQUEST_DURATION.labels(endpoint=endpoint, outcome=outcome).observe(elapsed)

        return response
