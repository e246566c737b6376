"""Access logging for the rule tester API."""

import logging
import time
from collections.abc import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("clash_rule_tester.access")

# Outcomes logged at warning level: the evaluation could not finish
FAILED_OUTCOMES = frozenset({"provider_error"})


def client_address(request: Request) -> str:
    """Address of the original client, honouring X-Forwarded-For."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def match_summary(request: Request) -> str:
    """Describe the tested domain and evaluation outcome, if the request ran one."""
    outcome = getattr(request.state, "match_outcome", None)
    if outcome is None:
        return ""
    domain = getattr(request.state, "match_domain", "-")
    return f" domain={domain} outcome={outcome}"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one access line per request.

    Match requests also log the domain that was tested and how the
    evaluation ended (matched, no_match, provider_error, ...), so a slow
    request can be traced to the provider download behind it.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        outcome = getattr(request.state, "match_outcome", None)
        level = logging.WARNING if outcome in FAILED_OUTCOMES else logging.INFO
        logger.log(
            level,
            "%s %s %s %d %.2fms%s",
            client_address(request),
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            match_summary(request),
        )

        response.headers["X-Process-Time-Ms"] = f"{elapsed_ms:.2f}"
        return response
