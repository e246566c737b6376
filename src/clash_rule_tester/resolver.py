"""Name resolvers that turn a domain into a single IPv4 address.

Resolution failure is never fatal: every resolver returns None instead of
raising, and rules that need an address simply do not match.
"""

import asyncio
import ipaddress
import logging
import socket
from typing import Any, Protocol

import httpx

from clash_rule_tester.config import Settings
from clash_rule_tester.metrics.definitions import DNS_RESOLUTIONS_TOTAL

logger = logging.getLogger(__name__)

# DNS record type for A records in DNS JSON answers
A_RECORD_TYPE = 1


class NameResolver(Protocol):
    """Anything that can resolve a domain to one address."""

    async def resolve(self, domain: str) -> str | None:
        """Resolve domain to an address, or None on any failure."""
        ...


def ipv4_literal(domain: str) -> str | None:
    """Return domain if it is already an IPv4 address literal."""
    try:
        return str(ipaddress.IPv4Address(domain))
    except ValueError:
        return None


def first_a_record(data: Any) -> str | None:
    """Extract the first usable IPv4 address from a DNS JSON response.

    Responses with a non-zero Status (NXDOMAIN, SERVFAIL, ...) yield None.
    CNAME and other non-A answers are skipped.
    """
    if not isinstance(data, dict) or data.get("Status", 0) != 0:
        return None

    for answer in data.get("Answer") or []:
        if not isinstance(answer, dict):
            continue
        if answer.get("type", A_RECORD_TYPE) != A_RECORD_TYPE:
            continue
        address = ipv4_literal(str(answer.get("data", "")))
        if address:
            return address
    return None


def _record(address: str | None, domain: str) -> str | None:
    if address is None:
        DNS_RESOLUTIONS_TOTAL.labels(result="failed").inc()
        logger.warning(f"Could not resolve {domain}; address-based rules will not match")
    else:
        DNS_RESOLUTIONS_TOTAL.labels(result="resolved").inc()
        logger.debug(f"Resolved {domain} to {address}")
    return address


class DoHResolver:
    """Resolve names through a DNS-over-HTTPS JSON endpoint."""

    def __init__(
        self,
        url: str = "https://cloudflare-dns.com/dns-query",
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            async with self._client_lock:
                if self._client is None:
                    self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this resolver created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def resolve(self, domain: str) -> str | None:
        """Resolve domain to its first A record."""
        literal = ipv4_literal(domain)
        if literal:
            return literal

        client = await self._get_client()
        try:
            response = await client.get(
                self.url,
                params={"name": domain, "type": "A"},
                headers={"accept": "application/dns-json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException:
            logger.warning(f"DNS query for {domain} timed out")
            return _record(None, domain)
        except httpx.HTTPError as e:
            logger.warning(f"DNS query for {domain} failed: {e}")
            return _record(None, domain)
        except ValueError as e:
            logger.warning(f"DNS response for {domain} is not valid JSON: {e}")
            return _record(None, domain)

        return _record(first_a_record(data), domain)


class SystemResolver:
    """Resolve names with the operating system resolver (getaddrinfo)."""

    def __init__(self, timeout: float = 5.0):
        self.timeout = timeout

    async def resolve(self, domain: str) -> str | None:
        """Resolve domain to its first IPv4 address."""
        literal = ipv4_literal(domain)
        if literal:
            return literal

        loop = asyncio.get_running_loop()
        try:
            addrinfo = await asyncio.wait_for(
                loop.getaddrinfo(domain, None, family=socket.AF_INET, proto=socket.IPPROTO_TCP),
                timeout=self.timeout,
            )
        except (OSError, TimeoutError) as e:
            logger.warning(f"System resolution of {domain} failed: {e!r}")
            return _record(None, domain)

        for _family, _, _, _, sockaddr in addrinfo:
            return _record(str(sockaddr[0]), domain)
        return _record(None, domain)


def create_resolver(
    settings: Settings,
    client: httpx.AsyncClient | None = None,
) -> DoHResolver | SystemResolver:
    """Create the resolver selected in settings."""
    if settings.resolver == "system":
        return SystemResolver(timeout=settings.resolver_timeout)
    return DoHResolver(url=settings.doh_url, timeout=settings.resolver_timeout, client=client)
