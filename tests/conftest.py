"""Pytest configuration and fixtures for clash rule tester tests."""

import asyncio
from collections.abc import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from clash_rule_tester.config import Settings, clear_settings_cache
from clash_rule_tester.main import create_app
from clash_rule_tester.providers.fetcher import TransportError
from clash_rule_tester.providers.store import ProviderStore
from clash_rule_tester.rules.engine import RuleEngine


class FakeFetcher:
    """In-memory byte fetcher that records every call.

    URLs missing from ``responses`` fail like a 404. Set ``gate`` to an
    asyncio.Event to hold every fetch until the event is set.
    """

    def __init__(self, responses: dict[str, bytes | Exception] | None = None):
        self.responses = responses or {}
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)

        response = self.responses.get(url)
        if response is None:
            raise TransportError(url, "Request failed with status 404", status_code=404)
        if isinstance(response, Exception):
            raise response
        return response


class FakeResolver:
    """Name resolver returning a fixed address and recording every call."""

    def __init__(self, address: str | None = "93.184.216.34"):
        self.address = address
        self.calls: list[str] = []

    async def resolve(self, domain: str) -> str | None:
        self.calls.append(domain)
        await asyncio.sleep(0)
        return self.address


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch) -> Generator[None, None, None]:
    """Keep environment overrides from leaking between tests."""
    for name in ("CLASH_RULE_TESTER_RESOLVER", "CLASH_RULE_TESTER_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        api_host="127.0.0.1",
        api_port=18000,
        resolver="doh",
        log_level="DEBUG",
    )


@pytest.fixture
def fetcher() -> FakeFetcher:
    """Create an empty fake fetcher."""
    return FakeFetcher()


@pytest.fixture
def resolver() -> FakeResolver:
    """Create a fake resolver answering with a public address."""
    return FakeResolver()


@pytest.fixture
def store(fetcher: FakeFetcher) -> ProviderStore:
    """Create a provider store backed by the fake fetcher."""
    return ProviderStore(fetcher)


@pytest.fixture
def engine(store: ProviderStore, resolver: FakeResolver) -> RuleEngine:
    """Create a rule engine with fake collaborators."""
    return RuleEngine(store, resolver)


@pytest.fixture
def sample_config_yaml() -> str:
    """Sample Clash configuration with http and inline providers."""
    return """
rule-providers:
  reject:
    type: http
    behavior: domain
    format: text
    url: "https://rules.example.com/reject.txt"
    path: ./ruleset/reject.txt
    interval: 86400
  cnip:
    type: http
    behavior: ipcidr
    url: "https://rules.example.com/cnip.yaml"
    interval: 86400
  inline-provider:
    type: inline
    behavior: classical
    payload:
      - 'DOMAIN-SUFFIX,inline-test.com'

rules:
  - RULE-SET,reject,REJECT
  - RULE-SET,cnip,DIRECT
  - RULE-SET,inline-provider,PROXY
  - DOMAIN-SUFFIX,google.com,PROXY
  - MATCH,PROXY
"""


@pytest.fixture
def sample_provider_bodies() -> dict[str, bytes]:
    """Provider bodies matching sample_config_yaml."""
    return {
        "https://rules.example.com/reject.txt": (
            b"# ad domains\n"
            b"+.doubleclick.net\n"
            b"\n"
            b"ads.example.org\n"
        ),
        "https://rules.example.com/cnip.yaml": (
            b"payload:\n"
            b"  - '1.0.1.0/24'\n"
            b"  - '36.0.0.0/8'\n"
        ),
    }


@pytest.fixture
def app(test_settings: Settings, sample_provider_bodies: dict[str, bytes]) -> FastAPI:
    """Create test application serving the sample provider bodies."""
    engine = RuleEngine(ProviderStore(FakeFetcher(sample_provider_bodies)), FakeResolver())
    return create_app(test_settings, engine=engine)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
