"""Download of remote binaries (provider outputs, proxied urls)."""

from __future__ import annotations

import logging
import os
from typing import Awaitable, Callable
from urllib.parse import parse_qs, urlparse

import httpx

logger = logging.getLogger(__name__)

# Path of the image proxy the presentation layer wraps provider urls in
PROXY_PATH = "/api/proxy/image"

MAX_DOWNLOAD_BYTES = 50 * 1024 * 1024  # 50MB

Fetcher = Callable[[str], Awaitable[bytes]]


def is_proxied_url(url: str | None) -> bool:
    return bool(url) and PROXY_PATH in url


def is_remote_url(url: str | None) -> bool:
    return bool(url) and urlparse(url).scheme in ("http", "https")


def unwrap_proxy_url(url: str) -> str:
    """Return the provider url wrapped in a proxy url, or ``url`` unchanged."""
    if not is_proxied_url(url):
        return url
    target = parse_qs(urlparse(url).query).get("url")
    return target[0] if target else url


class HttpFetcher:
    """Fetch bytes over HTTP with a size cap.

    Callable, so it can be passed wherever a ``Fetcher`` is expected.
    """

    DEFAULT_TIMEOUT = 60.0

    def __init__(
        self,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
        max_bytes: int = MAX_DOWNLOAD_BYTES,
    ):
        self._timeout = (
            timeout
            if timeout is not None
            else float(os.environ.get("PROVIDER_TIMEOUT_SECONDS", self.DEFAULT_TIMEOUT))
        )
        self._client = client
        self._max_bytes = max_bytes

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self._client

    async def __call__(self, url: str) -> bytes:
        """Download ``url`` (proxy wrappers are unwrapped first).

        Raises:
            httpx.HTTPError: Transport failure or error status.
            ValueError: Not an absolute url, or the body is too large.
        """
        target = unwrap_proxy_url(url)
        if not is_remote_url(target):
            raise ValueError(f"Not a remote url: {url}")

        chunks = []
        received = 0
        async with self.client.stream("GET", target) as response:
            response.raise_for_status()
            declared = response.headers.get("Content-Length")
            if declared and declared.isdigit() and int(declared) > self._max_bytes:
                raise ValueError(f"Download exceeds {self._max_bytes} bytes: {target}")
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received > self._max_bytes:
                    raise ValueError(f"Download exceeds {self._max_bytes} bytes: {target}")
                chunks.append(chunk)
        logger.debug(f"Fetched {received} bytes from {target}")
        return b"".join(chunks)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
