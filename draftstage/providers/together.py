"""Together AI image provider.

Implements the ProviderGateway interface for Together's image generation
API. Images come back synchronously as a url, so there is nothing to poll.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from draftstage.errors import ProviderError, ProviderTimeoutError
from draftstage.models import DraftKind, SubmitResult

from .base import HttpProvider

logger = logging.getLogger(__name__)


class TogetherImageProvider(HttpProvider):
    """Together AI images API (``POST /images/generations``).

    Configuration (env vars):
    - TOGETHER_API_KEY: API key
    - TOGETHER_API_URL: Base url (default: https://api.together.xyz/v1)
    - PROVIDER_TIMEOUT_SECONDS: Request timeout (default: 120)
    """

    DEFAULT_BASE_URL = "https://api.together.xyz/v1"
    DEFAULT_TIMEOUT = 120.0
    DEFAULT_SIZE = 1024

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(
            api_key=api_key or os.environ.get("TOGETHER_API_KEY"),
            base_url=base_url or os.environ.get("TOGETHER_API_URL", self.DEFAULT_BASE_URL),
            timeout=(
                timeout
                if timeout is not None
                else float(os.environ.get("PROVIDER_TIMEOUT_SECONDS", self.DEFAULT_TIMEOUT))
            ),
            client=client,
        )

    @property
    def name(self) -> str:
        return "together"

    def supports(self, kind: DraftKind) -> bool:
        return DraftKind(kind) == DraftKind.image

    async def submit(
        self,
        prompt: str,
        model_id: str,
        kind: DraftKind,
        extra: dict[str, Any] | None = None,
    ) -> SubmitResult:
        """Generate one image and return its url.

        API error responses come back as ``success=False`` with the
        provider's message; transport failures raise.
        """
        extra = extra or {}
        payload = {
            "model": model_id,
            "prompt": prompt,
            "n": 1,
            "width": extra.get("width", self.DEFAULT_SIZE),
            "height": extra.get("height", self.DEFAULT_SIZE),
            "response_format": "url",
        }

        try:
            response = await self.client.post(
                f"{self._base_url}/images/generations",
                json=payload,
                headers=self._headers(),
            )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"Image request timed out: {e}", provider=self.name) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Image request failed: {e}", provider=self.name) from e

        try:
            self._raise_for_response(response, model_id=model_id)
        except ProviderError as e:
            logger.warning(
                "Together image generation failed: %s",
                e.message,
                extra={"provider": self.name, "model": model_id},
            )
            return SubmitResult(success=False, error=f"API error: {e.message}")

        data = response.json()
        image_url = _first_url(data)
        if not image_url:
            return SubmitResult(success=False, error="No image url in provider response")

        logger.info("Together image generated", extra={"provider": self.name, "model": model_id})
        return SubmitResult(success=True, output_url=image_url)


def _first_url(data: dict) -> str | None:
    """Extract the first image url; the payload shape varies between models."""
    for key in ("data", "images"):
        items = data.get(key) or []
        if items and isinstance(items[0], dict) and items[0].get("url"):
            return items[0]["url"]
    return None
