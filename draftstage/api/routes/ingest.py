"""Ingestion endpoints.

Endpoints:
- POST /api/stage/{session_id}/ingest/stock - Add chosen stock images
- POST /api/stage/{session_id}/ingest/{kind} - Add prompt suggestions

All responses use the { data, error } envelope pattern.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from draftstage.api.response import success_response
from draftstage.api.session import get_workspace
from draftstage.models import DraftKind, IngestRequest, StockIngestRequest
from draftstage.services.workspace import Workspace

router = APIRouter(prefix="/api/stage/{session_id}/ingest", tags=["Ingestion"])

WorkspaceDep = Annotated[Workspace, Depends(get_workspace)]


@router.post("/stock")
async def ingest_stock_images(request: StockIngestRequest, workspace: WorkspaceDep) -> dict:
    """Turn stock search results into completed image drafts."""
    added = workspace.ingestion.on_stock_images(request.images)
    await workspace.persist()
    return success_response({"drafts": [d.model_dump(mode="json") for d in added]})


@router.post("/{kind}")
async def ingest_prompts(kind: DraftKind, request: IngestRequest, workspace: WorkspaceDep) -> dict:
    """Append one draft per suggestion.

    Text suggestions are complete at once; image and video suggestions wait
    for generation.
    """
    added = workspace.ingestion.on_incoming_prompts(request.prompts, kind)
    await workspace.persist()
    return success_response({"drafts": [d.model_dump(mode="json") for d in added]})
