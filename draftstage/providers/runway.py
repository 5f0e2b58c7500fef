"""Runway video provider.

Implements the ProviderGateway interface for Runway's task API. Videos are
long-running: submit returns a task id which the coordinator polls.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from draftstage.errors import ProviderError, ProviderTimeoutError
from draftstage.models import DraftKind, PollResult, PollStatus, SubmitResult

from .base import HttpProvider

logger = logging.getLogger(__name__)

API_VERSION = "2024-11-06"

# Runway task states -> contract poll states
_STATUS_MAP = {
    "PENDING": PollStatus.processing,
    "THROTTLED": PollStatus.processing,
    "RUNNING": PollStatus.processing,
    "SUCCEEDED": PollStatus.completed,
    "FAILED": PollStatus.failed,
    "CANCELLED": PollStatus.failed,
}


class RunwayVideoProvider(HttpProvider):
    """Runway ``text_to_video`` / ``image_to_video`` plus ``tasks/{id}``.

    Configuration (env vars):
    - RUNWAY_API_KEY: API key
    - RUNWAY_API_URL: Base url (default: https://api.dev.runwayml.com/v1)
    - PROVIDER_TIMEOUT_SECONDS: Request timeout (default: 120)
    """

    DEFAULT_BASE_URL = "https://api.dev.runwayml.com/v1"
    DEFAULT_TIMEOUT = 120.0

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(
            api_key=api_key or os.environ.get("RUNWAY_API_KEY"),
            base_url=base_url or os.environ.get("RUNWAY_API_URL", self.DEFAULT_BASE_URL),
            timeout=(
                timeout
                if timeout is not None
                else float(os.environ.get("PROVIDER_TIMEOUT_SECONDS", self.DEFAULT_TIMEOUT))
            ),
            client=client,
        )

    @property
    def name(self) -> str:
        return "runway"

    def supports(self, kind: DraftKind) -> bool:
        return DraftKind(kind) == DraftKind.video

    def _headers(self) -> dict[str, str]:
        return {**super()._headers(), "X-Runway-Version": API_VERSION}

    async def submit(
        self,
        prompt: str,
        model_id: str,
        kind: DraftKind,
        extra: dict[str, Any] | None = None,
    ) -> SubmitResult:
        """Create a video task.

        ``extra["prompt_image"]`` switches to image-to-video.
        """
        extra = extra or {}
        payload: dict[str, Any] = {"promptText": prompt, "model": model_id}
        if extra.get("duration"):
            payload["duration"] = extra["duration"]

        endpoint = "text_to_video"
        if extra.get("prompt_image"):
            endpoint = "image_to_video"
            payload["promptImage"] = extra["prompt_image"]

        response = await self._request("POST", f"/{endpoint}", json=payload, model_id=model_id)
        task_id = response.json().get("id")
        if not task_id:
            return SubmitResult(success=False, error="No task id in provider response")

        logger.info(
            "Runway task created",
            extra={"provider": self.name, "model": model_id, "job_id": task_id},
        )
        return SubmitResult(success=True, job_id=task_id)

    async def poll(self, job_id: str) -> PollResult:
        response = await self._request("GET", f"/tasks/{job_id}")
        data = response.json()

        status = _STATUS_MAP.get(str(data.get("status", "")).upper(), PollStatus.processing)
        output = data.get("output") or []
        output_url = output[0] if isinstance(output, list) and output else data.get("output_url")

        return PollResult(
            status=status,
            output_url=output_url,
            error=data.get("failure") or data.get("error"),
        )

    async def cancel(self, job_id: str) -> bool:
        try:
            await self._request("DELETE", f"/tasks/{job_id}")
        except ProviderError as e:
            logger.warning(f"Could not cancel Runway task {job_id}: {e}")
            return False
        return True

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        model_id: str | None = None,
    ) -> httpx.Response:
        try:
            response = await self.client.request(
                method,
                f"{self._base_url}{path}",
                json=json,
                headers=self._headers(),
            )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"Runway request timed out: {e}", provider=self.name) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Runway request failed: {e}", provider=self.name) from e

        self._raise_for_response(response, model_id=model_id)
        return response
