"""Local persistence for generated binaries.

Provider urls are transient; the stage keeps its own copy of generated
images keyed by an internal asset id. Two variants are stored per asset:
``original`` (full quality) and ``thumb``.

Supports two backends:
1. GridFS (durable) - binaries survive server restart
2. In-memory (fallback) - for testing or when MongoDB is unavailable
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import uuid4

from gridfs import NoFile

from draftstage.db.mongo import get_gridfs_bucket
from draftstage.services.image_utils import (
    compute_sha256,
    generate_thumbnail,
    get_image_dimensions,
)

logger = logging.getLogger(__name__)

# Public path under which persisted images are served
LOCAL_ASSET_PREFIX = "/uploads/images/"

ASSET_BUCKET = "stage_assets"

VARIANTS = ("original", "thumb")


def local_asset_url(asset_id: str, extension: str = "png") -> str:
    """Url of a persisted asset as stored on a draft."""
    return f"{LOCAL_ASSET_PREFIX}{asset_id}.{extension}"


def parse_local_asset_id(url: str | None) -> Optional[str]:
    """Return the asset id if ``url`` points at a persisted asset, else None."""
    if not url:
        return None
    path = url.split("?", 1)[0]
    marker = path.find(LOCAL_ASSET_PREFIX)
    if marker < 0:
        return None
    name = path[marker + len(LOCAL_ASSET_PREFIX):]
    asset_id = name.rsplit(".", 1)[0]
    return asset_id or None


class BaseAssetStore(ABC):
    """Abstract base class for binary asset stores."""

    @abstractmethod
    async def store(
        self,
        content: bytes,
        media_type: str,
        metadata: dict[str, Any] | None = None,
        variant: str = "original",
        asset_id: str | None = None,
    ) -> str:
        """Store one variant of an asset. Returns the asset id."""
        pass

    @abstractmethod
    async def get(self, asset_id: str, variant: str = "original") -> Optional[tuple[bytes, str]]:
        """Return ``(content, media_type)`` or None if not found."""
        pass

    @abstractmethod
    async def find(self, **metadata: Any) -> Optional[str]:
        """Return the newest asset id whose metadata matches all given fields."""
        pass

    @abstractmethod
    async def delete(self, asset_id: str) -> int:
        """Delete every variant of an asset. Returns the number removed."""
        pass


class InMemoryAssetStore(BaseAssetStore):
    """Dict-backed asset store. Assets are lost on restart."""

    def __init__(self) -> None:
        # (asset_id, variant) -> (content, media_type, metadata)
        self._files: dict[tuple[str, str], tuple[bytes, str, dict[str, Any]]] = {}
        self._order: list[str] = []
        self._lock = asyncio.Lock()

    async def store(
        self,
        content: bytes,
        media_type: str,
        metadata: dict[str, Any] | None = None,
        variant: str = "original",
        asset_id: str | None = None,
    ) -> str:
        asset_id = asset_id or str(uuid4())
        async with self._lock:
            self._files[(asset_id, variant)] = (content, media_type, dict(metadata or {}))
            if asset_id not in self._order:
                self._order.append(asset_id)
        logger.debug(f"Stored asset {asset_id} ({variant}, {len(content)} bytes)")
        return asset_id

    async def get(self, asset_id: str, variant: str = "original") -> Optional[tuple[bytes, str]]:
        async with self._lock:
            entry = self._files.get((asset_id, variant))
        if entry is None:
            return None
        content, media_type, _ = entry
        return content, media_type

    async def find(self, **metadata: Any) -> Optional[str]:
        async with self._lock:
            for asset_id in reversed(self._order):
                entry = self._files.get((asset_id, "original"))
                if entry is None:
                    continue
                stored = entry[2]
                if all(stored.get(k) == v for k, v in metadata.items()):
                    return asset_id
        return None

    async def delete(self, asset_id: str) -> int:
        async with self._lock:
            keys = [key for key in self._files if key[0] == asset_id]
            for key in keys:
                del self._files[key]
            if asset_id in self._order:
                self._order.remove(asset_id)
        return len(keys)

    def __len__(self) -> int:
        return len(self._order)


class GridFSAssetStore(BaseAssetStore):
    """GridFS-backed asset store.

    Files are named ``{asset_id}_{variant}``; metadata carries the content
    type plus caller fields (draft_id, source_url, model_id, session_id).
    """

    def __init__(self, bucket_name: str = ASSET_BUCKET):
        self._bucket_name = bucket_name

    async def store(
        self,
        content: bytes,
        media_type: str,
        metadata: dict[str, Any] | None = None,
        variant: str = "original",
        asset_id: str | None = None,
    ) -> str:
        asset_id = asset_id or str(uuid4())
        bucket = await get_gridfs_bucket(self._bucket_name)
        file_id = await bucket.upload_from_stream(
            f"{asset_id}_{variant}",
            content,
            metadata={
                "content_type": media_type,
                "asset_id": asset_id,
                "variant": variant,
                **(metadata or {}),
            },
        )
        logger.info(f"Stored asset {asset_id}_{variant} ({len(content)} bytes) -> {file_id}")
        return asset_id

    async def get(self, asset_id: str, variant: str = "original") -> Optional[tuple[bytes, str]]:
        bucket = await get_gridfs_bucket(self._bucket_name)
        try:
            grid_out = await bucket.open_download_stream_by_name(f"{asset_id}_{variant}")
            content = await grid_out.read()
        except NoFile:
            logger.warning(f"Asset not found: {asset_id}_{variant}")
            return None
        metadata = grid_out.metadata or {}
        return content, metadata.get("content_type", "application/octet-stream")

    async def find(self, **metadata: Any) -> Optional[str]:
        bucket = await get_gridfs_bucket(self._bucket_name)
        files = bucket._collection.database[f"{self._bucket_name}.files"]
        query = {f"metadata.{k}": v for k, v in metadata.items()}
        query["metadata.variant"] = "original"
        doc = await files.find_one(query, sort=[("uploadDate", -1)])
        if doc is None:
            return None
        return doc["metadata"]["asset_id"]

    async def delete(self, asset_id: str) -> int:
        bucket = await get_gridfs_bucket(self._bucket_name)
        files = bucket._collection.database[f"{self._bucket_name}.files"]
        deleted = 0
        async for doc in files.find({"metadata.asset_id": asset_id}, {"_id": 1}):
            await bucket.delete(doc["_id"])
            deleted += 1
        logger.info(f"Deleted {deleted} GridFS files for asset {asset_id}")
        return deleted


async def persist_image(
    store: BaseAssetStore,
    content: bytes,
    media_type: str,
    metadata: dict[str, Any] | None = None,
) -> tuple[str, int, int]:
    """Store a generated image as original + thumbnail.

    Returns:
        Tuple of (asset_id, width, height).

    Raises:
        ValueError: If the bytes are not a readable image.
    """
    width, height = get_image_dimensions(content)
    thumb_bytes, thumb_media_type = generate_thumbnail(content)
    metadata = {
        **(metadata or {}),
        "sha256": compute_sha256(content),
        "width": width,
        "height": height,
    }

    asset_id = await store.store(content, media_type, metadata, variant="original")
    await store.store(thumb_bytes, thumb_media_type, metadata, variant="thumb", asset_id=asset_id)

    logger.info(f"Persisted image asset {asset_id} ({width}x{height}, {len(content)} bytes)")
    return asset_id, width, height
