"""Byte fetchers used to download http rule providers."""

import asyncio
import logging
from typing import Protocol
from urllib.parse import urlparse

import httpx

from clash_rule_tester import __version__

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when a provider body cannot be downloaded."""

    def __init__(self, url: str, message: str, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class ByteFetcher(Protocol):
    """Anything that can fetch raw bytes from a URL."""

    async def fetch(self, url: str) -> bytes:
        """Fetch the body at url.

        Raises:
            TransportError: If the body cannot be retrieved
        """
        ...


class HttpFetcher:
    """Fetch provider bodies over HTTP(S) with httpx."""

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = f"clash-rule-tester/{__version__}",
        max_bytes: int = 20 * 1024 * 1024,
        client: httpx.AsyncClient | None = None,
    ):
        self.timeout = timeout
        self.user_agent = user_agent
        self.max_bytes = max_bytes
        self._client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            async with self._client_lock:
                # Double-check after acquiring lock
                if self._client is None:
                    self._client = httpx.AsyncClient(
                        timeout=self.timeout,
                        follow_redirects=True,
                        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                    )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> bytes:
        """Download url and return its body.

        Raises:
            TransportError: On a non-HTTP(S) URL, a non-2xx response, a body
                larger than max_bytes, a timeout or any other HTTP error
        """
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            raise TransportError(url, f"URL scheme must be http or https, got: {parsed.scheme!r}")
        if not parsed.hostname:
            raise TransportError(url, "URL must have a hostname")

        client = await self._get_client()
        try:
            async with client.stream(
                "GET",
                url,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            ) as response:
                if not response.is_success:
                    raise TransportError(
                        url,
                        f"Request failed with status {response.status_code}",
                        status_code=response.status_code,
                    )

                chunks: list[bytes] = []
                size = 0
                async for chunk in response.aiter_bytes():
                    size += len(chunk)
                    if size > self.max_bytes:
                        raise TransportError(
                            url,
                            f"Response body exceeds {self.max_bytes} bytes",
                            status_code=response.status_code,
                        )
                    chunks.append(chunk)
        except httpx.TimeoutException as e:
            raise TransportError(url, "Request timed out") from e
        except httpx.HTTPError as e:
            raise TransportError(url, f"HTTP error: {e}") from e

        logger.debug(f"Fetched {size} bytes from {url}")
        return b"".join(chunks)
