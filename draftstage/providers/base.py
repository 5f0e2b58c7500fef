"""Abstract base class for generation providers.

Defines the submit/poll/cancel contract every provider implements. A
provider knows nothing about drafts: it turns a prompt into either an
output url or a job handle.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx

from draftstage.errors import (
    AuthenticationError,
    ModelUnavailableError,
    ProviderError,
    RateLimitError,
)
from draftstage.models import DraftKind, PollResult, SubmitResult


class ProviderGateway(ABC):
    """Base interface for generation providers.

    All providers (Together, Runway, test stubs) implement this interface so
    the coordinator treats them uniformly.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier: 'together', 'runway', etc."""
        ...

    @abstractmethod
    async def submit(
        self,
        prompt: str,
        model_id: str,
        kind: DraftKind,
        extra: dict[str, Any] | None = None,
    ) -> SubmitResult:
        """Start a generation.

        Args:
            prompt: Generation prompt.
            model_id: Provider model identifier.
            kind: Draft kind being generated (image or video).
            extra: Provider-specific options (duration, size, ...).

        Returns:
            SubmitResult with either ``output_url`` (synchronous providers)
            or ``job_id`` (providers that must be polled).

        Raises:
            ProviderError: Network or provider-side failure.
            ModelUnavailableError: The model is not served.
        """
        ...

    async def poll(self, job_id: str) -> PollResult:
        """Check a submitted job.

        Raises:
            NotImplementedError: If the provider answers synchronously.
        """
        raise NotImplementedError(f"{self.name} does not support polling")

    async def cancel(self, job_id: str) -> bool:
        """Ask the provider to stop a job. Best effort; False if unsupported."""
        return False

    def supports(self, kind: DraftKind) -> bool:
        """Check if the provider generates this draft kind."""
        return False

    async def aclose(self) -> None:
        """Release network resources."""
        return None


class HttpProvider(ProviderGateway, ABC):
    """Shared httpx plumbing for HTTP providers."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str,
        timeout: float,
        client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialized HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise AuthenticationError(
                f"{self.name} API key not configured",
                provider=self.name,
            )
        return {"Authorization": f"Bearer {self._api_key}"}

    def _raise_for_response(self, response: httpx.Response, model_id: str | None = None) -> None:
        """Map an HTTP error response to the provider error hierarchy."""
        if response.is_success:
            return

        message = _error_message(response)
        status = response.status_code
        if status in (401, 403):
            raise AuthenticationError(message, provider=self.name, status_code=status)
        if status == 429:
            raise RateLimitError(message, provider=self.name, status_code=status)
        if status == 404 and model_id:
            raise ModelUnavailableError(
                f"model {model_id} unavailable: {message}",
                model_id=model_id,
                provider=self.name,
            )
        raise ProviderError(message, provider=self.name, status_code=status)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def _error_message(response: httpx.Response) -> str:
    """Best-effort error text from a provider response body."""
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase

    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return error.get("message") or str(error)
    if error:
        return str(error)
    return str(data)
