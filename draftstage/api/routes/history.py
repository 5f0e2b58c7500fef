"""Snapshot history endpoints.

Endpoints:
- GET    /api/stage/{session_id}/snapshots - Summaries, newest first
- POST   /api/stage/{session_id}/snapshots - Capture the current stage
- GET    /api/stage/{session_id}/snapshots/{snapshot_id} - Full snapshot
- POST   /api/stage/{session_id}/snapshots/{snapshot_id}/restore - Restore
- DELETE /api/stage/{session_id}/snapshots?confirm=true - Clear history

All responses use the { data, error } envelope pattern.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from draftstage.api.response import error_response, success_response
from draftstage.api.session import get_workspace
from draftstage.services.workspace import Workspace

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stage/{session_id}/snapshots", tags=["History"])

WorkspaceDep = Annotated[Workspace, Depends(get_workspace)]


def _snapshot_not_found(snapshot_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content=error_response("SNAPSHOT_NOT_FOUND", f"Snapshot '{snapshot_id}' not found"),
    )


@router.get("")
async def list_snapshots(workspace: WorkspaceDep) -> dict:
    """Return snapshot summaries, newest first."""
    return success_response({"snapshots": [s.model_dump(mode="json") for s in await workspace.history.summaries()]})


@router.post("")
async def capture_snapshot(workspace: WorkspaceDep) -> dict:
    """Capture the current text and image drafts."""
    snapshot = await workspace.history.capture(workspace.collection)
    return success_response(snapshot.summary())


@router.get("/{snapshot_id}")
async def get_snapshot(snapshot_id: str, workspace: WorkspaceDep) -> dict:
    snapshot = await workspace.history.restore_by_id(snapshot_id)
    if snapshot is None:
        return _snapshot_not_found(snapshot_id)
    return success_response(snapshot)


@router.post("/{snapshot_id}/restore")
async def restore_snapshot(snapshot_id: str, workspace: WorkspaceDep) -> dict:
    """Replace the text and image drafts with a snapshot's content."""
    snapshot = await workspace.history.restore_into(snapshot_id, workspace.collection)
    if snapshot is None:
        return _snapshot_not_found(snapshot_id)
    await workspace.persist()
    return success_response(workspace.collection.read_model())


@router.delete("")
async def clear_snapshots(
    workspace: WorkspaceDep,
    confirm: Annotated[bool, Query(description="Must be true; clearing is irreversible")] = False,
) -> dict:
    """Delete the whole snapshot history of the session."""
    removed = await workspace.history.clear_all(confirm=confirm)
    logger.info(f"Cleared {removed} snapshots of session {workspace.session_id}")
    return success_response({"removed": removed})
