"""Clash rule tester API application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from clash_rule_tester import __version__
from clash_rule_tester.api.router import api_router
from clash_rule_tester.config import Settings, get_settings
from clash_rule_tester.metrics import MetricsMiddleware
from clash_rule_tester.middleware import RequestLoggingMiddleware
from clash_rule_tester.rules.engine import RuleEngine


def create_app(settings: Settings | None = None, engine: RuleEngine | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override for testing. If not provided,
                  default settings will be loaded from environment.
        engine: Optional rule engine override for testing. If not provided,
                one is built from settings and shared by all requests.
    """
    if settings is None:
        settings = get_settings()
    if engine is None:
        engine = RuleEngine.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        yield
        await engine.aclose()

    app = FastAPI(
        title="Clash Rule Tester",
        description="Evaluate Clash rule sets and rule providers against a domain",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine

    app.add_middleware(RequestLoggingMiddleware)

    if settings.metrics_enabled:
        app.add_middleware(MetricsMiddleware)

        @app.get("/metrics", include_in_schema=False)
        async def metrics() -> Response:
            """Expose Prometheus metrics."""
            return Response(
                content=generate_latest(),
                media_type=CONTENT_TYPE_LATEST,
            )

    app.include_router(api_router)

    return app
