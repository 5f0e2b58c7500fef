"""Routing gateway over several providers.

Dispatches submit by draft kind and remembers which provider owns each job
so poll/cancel reach the right backend.
"""

from __future__ import annotations

import logging
from typing import Any

from draftstage.errors import ProviderError
from draftstage.models import DraftKind, PollResult, SubmitResult

from .base import ProviderGateway
from .runway import RunwayVideoProvider
from .together import TogetherImageProvider

logger = logging.getLogger(__name__)


class RoutingGateway(ProviderGateway):
    """One gateway facade in front of per-kind providers."""

    def __init__(self, providers: dict[DraftKind, ProviderGateway]):
        self._providers = {DraftKind(k): p for k, p in providers.items()}
        self._job_owners: dict[str, ProviderGateway] = {}

    @property
    def name(self) -> str:
        return "routing"

    def supports(self, kind: DraftKind) -> bool:
        return DraftKind(kind) in self._providers

    def get_provider(self, kind: DraftKind) -> ProviderGateway:
        """Get the provider for a draft kind.

        Raises:
            ProviderError: If no provider is registered for the kind.
        """
        provider = self._providers.get(DraftKind(kind))
        if provider is None:
            raise ProviderError(f"No provider configured for {DraftKind(kind).value} drafts")
        return provider

    async def submit(
        self,
        prompt: str,
        model_id: str,
        kind: DraftKind,
        extra: dict[str, Any] | None = None,
    ) -> SubmitResult:
        provider = self.get_provider(kind)
        result = await provider.submit(prompt, model_id, kind, extra)
        if result.job_id:
            self._job_owners[result.job_id] = provider
        return result

    async def poll(self, job_id: str) -> PollResult:
        result = await self._owner(job_id).poll(job_id)
        if result.is_terminal():
            self._job_owners.pop(job_id, None)
        return result

    async def cancel(self, job_id: str) -> bool:
        provider = self._job_owners.pop(job_id, None)
        if provider is None:
            return False
        return await provider.cancel(job_id)

    async def aclose(self) -> None:
        for provider in self._providers.values():
            await provider.aclose()

    def _owner(self, job_id: str) -> ProviderGateway:
        provider = self._job_owners.get(job_id)
        if provider is not None:
            return provider
        # Jobs submitted before a restart: only video providers poll
        logger.debug(f"Unknown job {job_id}, routing poll to the video provider")
        return self.get_provider(DraftKind.video)


def build_default_gateway() -> RoutingGateway:
    """Gateway wired to Together (images) and Runway (videos) from env config."""
    return RoutingGateway(
        {
            DraftKind.image: TogetherImageProvider(),
            DraftKind.video: RunwayVideoProvider(),
        }
    )
