"""Download endpoint.

Endpoints:
- GET /api/stage/{session_id}/drafts/{kind}/{draft_id}/download

Answers with the binary when one of the byte sources succeeded, otherwise
with a { data, error } envelope carrying the url to fetch directly.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from draftstage.api.response import success_response
from draftstage.api.session import get_workspace
from draftstage.models import DraftKind
from draftstage.services.workspace import Workspace

router = APIRouter(prefix="/api/stage/{session_id}/drafts", tags=["Downloads"])

WorkspaceDep = Annotated[Workspace, Depends(get_workspace)]


@router.get("/{kind}/{draft_id}/download")
async def download_draft(kind: DraftKind, draft_id: int, workspace: WorkspaceDep):
    """Resolve the best available download for a draft."""
    result = await workspace.resolver.resolve(kind, draft_id)

    if result.is_direct:
        return success_response(
            {
                "tier": result.tier.value,
                "url": result.url,
                "filename": result.filename,
            }
        )

    return Response(
        content=result.content,
        media_type=result.media_type or "application/octet-stream",
        headers={
            "Content-Disposition": f'attachment; filename="{result.filename}"',
            "X-Download-Tier": result.tier.value,
        },
    )
