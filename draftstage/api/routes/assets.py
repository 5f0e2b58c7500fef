"""Asset serving endpoints.

Endpoints:
- GET /uploads/images/{filename} - Persisted image (original or thumb)
- GET /api/proxy/image?url=... - Provider image relayed through the server
"""

from __future__ import annotations

import logging
from typing import Annotated, Literal

import httpx
from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, Response

from draftstage.api.response import error_response
from draftstage.services.asset_store import parse_local_asset_id
from draftstage.services.remote_fetch import PROXY_PATH, is_remote_url
from draftstage.services.image_utils import sniff_media_type
from draftstage.services.workspace import get_registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Assets"])


@router.get("/uploads/images/{filename}")
async def serve_image(
    filename: str,
    size: Annotated[Literal["original", "thumb"], Query(description="Size variant")] = "original",
) -> Response:
    """Serve a persisted image by ``<asset_id>.<ext>``."""
    registry = get_registry()
    asset_id = parse_local_asset_id(f"/uploads/images/{filename}")
    stored = None
    if registry.asset_store is not None and asset_id:
        stored = await registry.asset_store.get(asset_id, variant=size)
    if stored is None:
        return JSONResponse(
            status_code=404,
            content=error_response("ASSET_NOT_FOUND", f"Asset '{filename}' not found"),
        )

    content, media_type = stored
    return Response(
        content=content,
        media_type=media_type,
        headers={"Cache-Control": "public, max-age=86400"},
    )


@router.get(PROXY_PATH)
async def proxy_image(url: Annotated[str, Query(description="Provider image url")]) -> Response:
    """Relay a remote image so the browser never talks to the provider."""
    registry = get_registry()
    if registry.fetcher is None or not is_remote_url(url):
        return JSONResponse(
            status_code=400,
            content=error_response("INVALID_URL", f"Cannot proxy '{url}'"),
        )

    try:
        content = await registry.fetcher(url)
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"Image proxy failed for {url}: {e}")
        return JSONResponse(
            status_code=502,
            content=error_response("UPSTREAM_ERROR", f"Could not fetch image: {e}"),
        )

    return Response(content=content, media_type=sniff_media_type(content, default="application/octet-stream"))
