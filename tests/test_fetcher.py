"""Tests for the httpx provider fetcher."""

import httpx
import pytest
import respx

from clash_rule_tester.providers.fetcher import HttpFetcher, TransportError

URL = "https://rules.example.com/reject.yaml"


class TestHttpFetcher:
    """Tests for HttpFetcher."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_success(self):
        """The body is returned and the User-Agent is sent."""
        route = respx.get(URL).mock(return_value=httpx.Response(200, content=b"payload: []\n"))

        fetcher = HttpFetcher(user_agent="tester/1.0")
        try:
            body = await fetcher.fetch(URL)
        finally:
            await fetcher.aclose()

        assert body == b"payload: []\n"
        assert route.called
        assert route.calls.last.request.headers["User-Agent"] == "tester/1.0"

    @pytest.mark.asyncio
    @respx.mock
    async def test_follows_redirects(self):
        """Redirects are followed to the final body."""
        respx.get(URL).mock(
            return_value=httpx.Response(302, headers={"Location": "https://cdn.example.com/r"})
        )
        respx.get("https://cdn.example.com/r").mock(return_value=httpx.Response(200, content=b"ok"))

        fetcher = HttpFetcher()
        try:
            assert await fetcher.fetch(URL) == b"ok"
        finally:
            await fetcher.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_success_status(self):
        """Non-2xx responses raise TransportError with the status code."""
        respx.get(URL).mock(return_value=httpx.Response(404, text="missing"))

        fetcher = HttpFetcher()
        with pytest.raises(TransportError) as exc_info:
            await fetcher.fetch(URL)
        await fetcher.aclose()

        assert exc_info.value.status_code == 404
        assert exc_info.value.url == URL
        assert "404" in str(exc_info.value)

    @pytest.mark.asyncio
    @respx.mock
    async def test_body_too_large(self):
        """Bodies over max_bytes are rejected."""
        respx.get(URL).mock(return_value=httpx.Response(200, content=b"x" * 100))

        fetcher = HttpFetcher(max_bytes=10)
        with pytest.raises(TransportError, match="exceeds 10 bytes"):
            await fetcher.fetch(URL)
        await fetcher.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout(self):
        """Timeouts raise TransportError."""
        respx.get(URL).mock(side_effect=httpx.ConnectTimeout("timed out"))

        fetcher = HttpFetcher()
        with pytest.raises(TransportError, match="timed out"):
            await fetcher.fetch(URL)
        await fetcher.aclose()

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_error(self):
        """Other transport failures raise TransportError."""
        respx.get(URL).mock(side_effect=httpx.ConnectError("connection refused"))

        fetcher = HttpFetcher()
        with pytest.raises(TransportError, match="HTTP error"):
            await fetcher.fetch(URL)
        await fetcher.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "url",
        ["ftp://rules.example.com/a.yaml", "file:///etc/passwd", "rules.example.com/a.yaml"],
    )
    async def test_rejects_non_http_urls(self, url):
        """Only http and https URLs are fetched."""
        fetcher = HttpFetcher()
        with pytest.raises(TransportError, match="scheme"):
            await fetcher.fetch(url)

    @pytest.mark.asyncio
    async def test_rejects_url_without_host(self):
        """URLs without a hostname are rejected."""
        with pytest.raises(TransportError, match="hostname"):
            await HttpFetcher().fetch("https:///a.yaml")

    @pytest.mark.asyncio
    @respx.mock
    async def test_injected_client_not_closed(self):
        """A caller-supplied client stays open after aclose."""
        respx.get(URL).mock(return_value=httpx.Response(200, content=b"ok"))

        async with httpx.AsyncClient() as client:
            fetcher = HttpFetcher(client=client)
            assert await fetcher.fetch(URL) == b"ok"
            await fetcher.aclose()
            assert not client.is_closed
