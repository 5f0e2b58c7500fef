"""Unit tests for remote fetching.

Tests cover:
- Proxy url detection and unwrapping
- HttpFetcher: unwraps proxies, rejects non-remote urls, raises on errors
- Size cap is enforced while streaming, before the whole body is read
"""

import httpx
import pytest

from draftstage.services.remote_fetch import (
    HttpFetcher,
    is_proxied_url,
    is_remote_url,
    unwrap_proxy_url,
)

PROVIDER_URL = "https://cdn.example.com/fox.png"


class TestUrls:
    def test_unwrap_proxy(self):
        assert unwrap_proxy_url(f"/api/proxy/image?url={PROVIDER_URL}") == PROVIDER_URL

    def test_unwrap_encoded(self):
        wrapped = "/api/proxy/image?url=https%3A%2F%2Fcdn.example.com%2Ffox.png"
        assert unwrap_proxy_url(wrapped) == PROVIDER_URL

    def test_unwrap_plain_url_unchanged(self):
        assert unwrap_proxy_url(PROVIDER_URL) == PROVIDER_URL

    def test_proxy_without_target_unchanged(self):
        assert unwrap_proxy_url("/api/proxy/image") == "/api/proxy/image"

    def test_predicates(self):
        assert is_proxied_url(f"/api/proxy/image?url={PROVIDER_URL}")
        assert not is_proxied_url(PROVIDER_URL)
        assert is_remote_url(PROVIDER_URL)
        assert not is_remote_url("/uploads/images/a.png")
        assert not is_remote_url(None)


class TestHttpFetcher:
    @pytest.mark.asyncio
    async def test_fetches_unwrapped_target(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, content=b"bytes")

        fetcher = HttpFetcher(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

        assert await fetcher(f"/api/proxy/image?url={PROVIDER_URL}") == b"bytes"
        assert seen == [PROVIDER_URL]
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_rejects_local_paths(self):
        fetcher = HttpFetcher(client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))))
        with pytest.raises(ValueError):
            await fetcher("/uploads/images/a.png")
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        fetcher = HttpFetcher(client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(404))))
        with pytest.raises(httpx.HTTPStatusError):
            await fetcher(PROVIDER_URL)
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_declared_length_over_limit_raises(self):
        handler = lambda r: httpx.Response(200, content=b"x" * 32)
        fetcher = HttpFetcher(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), max_bytes=16)
        with pytest.raises(ValueError):
            await fetcher(PROVIDER_URL)
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_streamed_body_stops_at_limit(self):
        sent = []

        async def body():
            for _ in range(10):
                sent.append(8)
                yield b"x" * 8

        handler = lambda r: httpx.Response(200, content=body())
        fetcher = HttpFetcher(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), max_bytes=16)

        with pytest.raises(ValueError):
            await fetcher(PROVIDER_URL)
        assert len(sent) < 10
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_body_at_limit_is_returned(self):
        handler = lambda r: httpx.Response(200, content=b"x" * 16)
        fetcher = HttpFetcher(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), max_bytes=16)
        assert await fetcher(PROVIDER_URL) == b"x" * 16
        await fetcher.aclose()
