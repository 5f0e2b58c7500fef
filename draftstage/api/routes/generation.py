"""Generation endpoints.

Endpoints:
- POST /api/stage/{session_id}/generate/{kind}/{draft_id} - Generate one draft
- POST /api/stage/{session_id}/regenerate/{kind} - Generate several drafts
- POST /api/stage/{session_id}/cancel/{kind}/{draft_id} - Abort a generation
- GET  /api/stage/{session_id}/models/{kind} - Available and selected models
- PUT  /api/stage/{session_id}/models/{kind} - Select the session model
- GET  /api/stage/{session_id}/jobs - Jobs in flight and recent events

Image generation answers once the provider returned; video generation
answers after submission and keeps polling in the background.

All responses use the { data, error } envelope pattern.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from draftstage.api.response import error_response, success_response
from draftstage.api.session import get_workspace
from draftstage.models import DraftKind, RegenerateRequest, SelectModelRequest, models_for
from draftstage.services.workspace import Workspace

router = APIRouter(prefix="/api/stage/{session_id}", tags=["Generation"])

WorkspaceDep = Annotated[Workspace, Depends(get_workspace)]


@router.post("/generate/{kind}/{draft_id}")
async def generate_draft(kind: DraftKind, draft_id: int, workspace: WorkspaceDep) -> dict:
    """Start generation of one draft.

    Returns:
        The job and the draft as it is after submission.
    """
    job = await workspace.coordinator.generate(kind, draft_id)
    await workspace.persist()
    draft = workspace.collection.get(kind, draft_id)
    return success_response(
        {
            "job": job.model_dump(mode="json"),
            "draft": draft.model_dump(mode="json") if draft else None,
        }
    )


@router.post("/regenerate/{kind}")
async def regenerate_drafts(kind: DraftKind, request: RegenerateRequest, workspace: WorkspaceDep) -> dict:
    """Generate several drafts one after another; failures do not stop the batch."""
    results = await workspace.coordinator.regenerate(kind, request.draft_ids)
    await workspace.persist()
    return success_response({"results": [r.model_dump(mode="json") for r in results]})


@router.post("/cancel/{kind}/{draft_id}")
async def cancel_generation(kind: DraftKind, draft_id: int, workspace: WorkspaceDep) -> dict:
    """Abort the generation in flight for a draft."""
    if not workspace.coordinator.cancel(kind, draft_id):
        return JSONResponse(
            status_code=404,
            content=error_response("JOB_NOT_FOUND", f"No generation in flight for {kind.value} draft {draft_id}"),
        )
    await workspace.persist()
    return success_response({"cancelled": True})


@router.get("/models/{kind}")
async def list_models(kind: DraftKind, workspace: WorkspaceDep) -> dict:
    """Return the model registry for a kind and the session's selection."""
    return success_response(
        {
            "models": [m.model_dump(mode="json") for m in models_for(kind)],
            "selected": workspace.coordinator.selected_model(kind) if models_for(kind) else None,
            "unavailable": sorted(workspace.coordinator.unavailable_models),
        }
    )


@router.put("/models/{kind}")
async def select_model(kind: DraftKind, request: SelectModelRequest, workspace: WorkspaceDep) -> dict:
    """Select the model used for drafts without their own model."""
    workspace.coordinator.select_model(kind, request.model_id)
    return success_response({"selected": request.model_id})


@router.get("/jobs")
async def list_jobs(workspace: WorkspaceDep) -> dict:
    """Return jobs in flight and terminal-state events so far."""
    return success_response(
        {
            "in_flight": [j.model_dump(mode="json") for j in workspace.coordinator.in_flight()],
            "events": [e.model_dump(mode="json") for e in workspace.coordinator.events],
        }
    )
