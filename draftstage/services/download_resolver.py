"""Download resolution for image and video drafts.

Finds the best available bytes for a draft by trying sources in order
(first success wins):

1. Local asset: the draft url points at a persisted asset
2. Persisted counterpart: a provider or proxied url whose bytes were
   persisted earlier (matched by source url, then draft id)
3. High resolution: a server-side 2048px rendition (images only)
4. Re-render: fetch the image and upscale it with Pillow (images only)
5. Direct url: hand back the url unmodified

A failing source is logged and skipped. Only a draft without any url can
end up unresolved.
"""

from __future__ import annotations

import logging
import os
import re
from enum import Enum
from typing import Awaitable, Callable, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from draftstage.errors import DownloadResolutionError, ValidationError
from draftstage.models import DraftKind, GeneratableDraft, ImageDraft
from draftstage.services.asset_store import BaseAssetStore, parse_local_asset_id
from draftstage.services.draft_collection import DraftCollection
from draftstage.services.image_utils import TARGET_RESOLUTION, render_high_resolution, sniff_media_type
from draftstage.services.remote_fetch import Fetcher, is_proxied_url, is_remote_url, unwrap_proxy_url

logger = logging.getLogger(__name__)


class DownloadTier(str, Enum):
    """Source a download was resolved from, in evaluation order."""
    local_asset = "local_asset"
    persisted_counterpart = "persisted_counterpart"
    high_resolution = "high_resolution"
    re_render = "re_render"
    direct_url = "direct_url"


class DownloadResult(BaseModel):
    """Resolved download: either bytes or a url to hand to the client."""
    model_config = ConfigDict(extra="forbid")

    tier: DownloadTier
    draft_id: int
    kind: DraftKind
    content: Optional[bytes] = Field(default=None, repr=False)
    url: Optional[str] = None
    media_type: Optional[str] = None
    filename: str

    @property
    def is_direct(self) -> bool:
        return self.content is None


# A strategy returns None when it does not apply to the draft and raises
# when it applies but fails.
DownloadStrategy = Callable[[GeneratableDraft], Awaitable[Optional[DownloadResult]]]


def suggested_filename(prompt: str, kind: DraftKind = DraftKind.image) -> str:
    """Download filename derived from the first 30 characters of the prompt."""
    stem = re.sub(r"[^a-zA-Z0-9]", "_", prompt[:30]) or kind.value
    if kind == DraftKind.video:
        return f"{stem}.mp4"
    return f"{stem}_{TARGET_RESOLUTION}x{TARGET_RESOLUTION}.png"


async def first_success(
    strategies: list[tuple[DownloadTier, DownloadStrategy]],
    draft: GeneratableDraft,
) -> Optional[DownloadResult]:
    """Run strategies in order and return the first result."""
    for tier, strategy in strategies:
        try:
            result = await strategy(draft)
        except Exception as e:
            logger.warning(
                f"Download tier {tier.value} failed for draft {draft.id}: {e}",
                extra={"draft_id": draft.id, "tier": tier.value},
            )
            continue
        if result is not None:
            logger.info(
                f"Resolved download for draft {draft.id} via {tier.value}",
                extra={"draft_id": draft.id, "tier": tier.value},
            )
            return result
    return None


class HighResolutionSource:
    """Client for the server-side high-resolution image endpoint.

    ``GET {base_url}/images/{draft_id}/highres`` returns image bytes.
    Disabled when no base url is configured.
    """

    DEFAULT_TIMEOUT = 60.0

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._base_url = (base_url or os.environ.get("STAGE_HIGHRES_API_URL", "")).rstrip("/")
        self._api_key = api_key or os.environ.get("STAGE_HIGHRES_API_KEY")
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self._base_url)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            timeout = float(os.environ.get("PROVIDER_TIMEOUT_SECONDS", self.DEFAULT_TIMEOUT))
            self._client = httpx.AsyncClient(timeout=timeout)
        return self._client

    async def fetch(self, draft_id: int) -> Optional[bytes]:
        """Return the high-resolution bytes, or None when disabled.

        Raises:
            httpx.HTTPError: Transport failure or error status.
        """
        if not self.enabled:
            return None
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        response = await self.client.get(f"{self._base_url}/images/{draft_id}/highres", headers=headers)
        response.raise_for_status()
        return response.content

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class DownloadResolver:
    """Resolve the best download for a draft of a collection.

    Usage:
        resolver = DownloadResolver(collection, asset_store, fetcher)
        result = await resolver.resolve(DraftKind.image, 3)
        if result.is_direct:
            redirect(result.url)
    """

    def __init__(
        self,
        collection: DraftCollection,
        asset_store: BaseAssetStore | None = None,
        fetcher: Fetcher | None = None,
        high_resolution: HighResolutionSource | None = None,
        session_id: str | None = None,
    ):
        self._collection = collection
        self._asset_store = asset_store
        self._fetcher = fetcher
        self._high_resolution = high_resolution
        self._session_id = session_id
        self.strategies: list[tuple[DownloadTier, DownloadStrategy]] = [
            (DownloadTier.local_asset, self._from_local_asset),
            (DownloadTier.persisted_counterpart, self._from_persisted_counterpart),
            (DownloadTier.high_resolution, self._from_high_resolution),
            (DownloadTier.re_render, self._from_re_render),
            (DownloadTier.direct_url, self._from_direct_url),
        ]

    async def resolve(self, kind: DraftKind | str, draft_id: int) -> DownloadResult:
        """Resolve a download for one draft.

        Raises:
            ValidationError: Text drafts have nothing to download.
            DownloadResolutionError: Unknown draft, or no source succeeded
                and the draft has no url.
        """
        kind = DraftKind(kind)
        if kind == DraftKind.text:
            raise ValidationError("Text drafts have no downloadable media")

        draft = self._collection.get(kind, draft_id)
        if draft is None:
            raise DownloadResolutionError(f"{kind.value} draft {draft_id} not found")

        result = await first_success(self.strategies, draft)
        if result is not None:
            return result

        message = "No download source available"
        self._collection.update(kind, draft_id, error=message)
        logger.error(f"Download unresolved for {kind.value} draft {draft_id}")
        raise DownloadResolutionError(message)

    def _result(self, draft: GeneratableDraft, tier: DownloadTier, **fields) -> DownloadResult:
        kind = DraftKind(draft.kind)
        return DownloadResult(
            tier=tier,
            draft_id=draft.id,
            kind=kind,
            filename=suggested_filename(draft.prompt, kind),
            **fields,
        )

    async def _load_asset(self, draft: GeneratableDraft, asset_id: str, tier: DownloadTier) -> DownloadResult:
        stored = await self._asset_store.get(asset_id)
        if stored is None:
            raise LookupError(f"asset {asset_id} not found")
        content, media_type = stored
        return self._result(draft, tier, content=content, media_type=media_type)

    async def _from_local_asset(self, draft: GeneratableDraft) -> Optional[DownloadResult]:
        if self._asset_store is None:
            return None
        asset_id = parse_local_asset_id(draft.url)
        if asset_id is None and isinstance(draft, ImageDraft):
            asset_id = draft.meta.asset_id
        if asset_id is None:
            return None
        return await self._load_asset(draft, asset_id, DownloadTier.local_asset)

    async def _from_persisted_counterpart(self, draft: GeneratableDraft) -> Optional[DownloadResult]:
        if self._asset_store is None:
            return None
        if not (is_proxied_url(draft.url) or is_remote_url(draft.url)):
            return None

        source_url = unwrap_proxy_url(draft.url)
        # Draft ids are reused across sessions and after removal; only the
        # source url within this session identifies a persisted copy
        asset_id = await self._asset_store.find(source_url=source_url, session_id=self._session_id)
        if asset_id is None:
            raise LookupError(f"no persisted copy of {source_url}")
        return await self._load_asset(draft, asset_id, DownloadTier.persisted_counterpart)

    async def _from_high_resolution(self, draft: GeneratableDraft) -> Optional[DownloadResult]:
        if self._high_resolution is None or not isinstance(draft, ImageDraft):
            return None
        content = await self._high_resolution.fetch(draft.id)
        if not content:
            return None
        return self._result(
            draft,
            DownloadTier.high_resolution,
            content=content,
            media_type=sniff_media_type(content),
        )

    async def _from_re_render(self, draft: GeneratableDraft) -> Optional[DownloadResult]:
        if self._fetcher is None or not isinstance(draft, ImageDraft) or not draft.url:
            return None
        source = await self._fetcher(draft.url)
        content, media_type, _ = render_high_resolution(source)
        return self._result(draft, DownloadTier.re_render, content=content, media_type=media_type)

    async def _from_direct_url(self, draft: GeneratableDraft) -> Optional[DownloadResult]:
        if not draft.url:
            return None
        return self._result(draft, DownloadTier.direct_url, url=draft.url)
