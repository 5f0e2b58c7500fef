"""Draft curation endpoints.

Endpoints:
- GET    /api/stage/{session_id}/drafts - Read model (all kinds)
- POST   /api/stage/{session_id}/drafts/{kind} - Append drafts
- POST   /api/stage/{session_id}/drafts/{kind}/empty - Append one empty draft
- PATCH  /api/stage/{session_id}/drafts/{kind}/{draft_id} - Partial update
- PUT    /api/stage/{session_id}/drafts/{kind}/{draft_id}/prompt - Edit prompt
- POST   /api/stage/{session_id}/drafts/{kind}/{draft_id}/select - Select
- POST   /api/stage/{session_id}/drafts/{kind}/{draft_id}/duplicate - Copy
- DELETE /api/stage/{session_id}/drafts/{kind}/{draft_id} - Remove

All responses use the { data, error } envelope pattern.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from draftstage.api.response import error_response, success_response
from draftstage.api.session import get_workspace
from draftstage.errors import ValidationError
from draftstage.models import (
    AddDraftsRequest,
    DraftBase,
    DraftKind,
    PromptUpdateRequest,
    UpdateDraftRequest,
    draft_model,
)
from draftstage.services.workspace import Workspace

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stage/{session_id}/drafts", tags=["Drafts"])

WorkspaceDep = Annotated[Workspace, Depends(get_workspace)]

# Owned by the generation coordinator; clients change them through generate/cancel
COORDINATOR_FIELDS = frozenset({"status", "job_id"})


def _not_found(kind: DraftKind, draft_id: int) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content=error_response("DRAFT_NOT_FOUND", f"{kind.value} draft {draft_id} not found"),
    )


def _build_drafts(kind: DraftKind, records: list[dict[str, Any]]) -> list[DraftBase]:
    """Validate raw records as drafts of ``kind``."""
    model = draft_model(kind)
    drafts = []
    for record in records:
        try:
            drafts.append(model.model_validate({**record, "kind": kind.value}))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid {kind.value} draft: {e}") from e
    return drafts


@router.get("")
async def read_drafts(workspace: WorkspaceDep) -> dict:
    """Return every draft of the session grouped by kind."""
    return success_response(workspace.collection.read_model())


@router.post("/{kind}")
async def add_drafts(kind: DraftKind, request: AddDraftsRequest, workspace: WorkspaceDep) -> dict:
    """Append drafts; ids are allocated after the current maximum."""
    added = workspace.collection.add(kind, _build_drafts(kind, request.drafts))
    await workspace.persist()
    return success_response({"drafts": [d.model_dump(mode="json") for d in added]})


@router.post("/{kind}/empty")
async def add_empty_draft(kind: DraftKind, workspace: WorkspaceDep) -> dict:
    """Append one draft with default values (prompt to be filled in)."""
    added = workspace.collection.add(kind, [draft_model(kind)()])
    await workspace.persist()
    return success_response(added[0])


@router.patch("/{kind}/{draft_id}")
async def update_draft(
    kind: DraftKind,
    draft_id: int,
    request: UpdateDraftRequest,
    workspace: WorkspaceDep,
) -> dict:
    """Merge the given fields into one draft.

    Generation state (status, job id) cannot be set here.
    """
    blocked = COORDINATOR_FIELDS.intersection(request.fields)
    if blocked:
        raise ValidationError(f"Fields are managed by generation: {', '.join(sorted(blocked))}")
    updated = workspace.collection.update(kind, draft_id, **request.fields)
    if updated is None:
        return _not_found(kind, draft_id)
    await workspace.persist()
    return success_response(updated)


@router.put("/{kind}/{draft_id}/prompt")
async def update_prompt(
    kind: DraftKind,
    draft_id: int,
    request: PromptUpdateRequest,
    workspace: WorkspaceDep,
) -> dict:
    """Replace a draft's prompt."""
    updated = workspace.collection.update(kind, draft_id, prompt=request.prompt)
    if updated is None:
        return _not_found(kind, draft_id)
    await workspace.persist()
    return success_response(updated)


@router.post("/{kind}/{draft_id}/select")
async def select_draft(kind: DraftKind, draft_id: int, workspace: WorkspaceDep) -> dict:
    """Make a draft the only selected one of its kind."""
    if not workspace.collection.select(kind, draft_id):
        return _not_found(kind, draft_id)
    await workspace.persist()
    return success_response(workspace.collection.get(kind, draft_id))


@router.post("/{kind}/{draft_id}/duplicate")
async def duplicate_draft(kind: DraftKind, draft_id: int, workspace: WorkspaceDep) -> dict:
    """Append a copy of a draft under a new id."""
    copy = workspace.collection.duplicate(kind, draft_id)
    if copy is None:
        return _not_found(kind, draft_id)
    await workspace.persist()
    return success_response(copy)


@router.delete("/{kind}/{draft_id}")
async def delete_draft(kind: DraftKind, draft_id: int, workspace: WorkspaceDep) -> dict:
    """Remove a draft, aborting its generation first if one is running."""
    workspace.coordinator.cancel(kind, draft_id)
    if not workspace.collection.remove(kind, draft_id):
        return _not_found(kind, draft_id)
    await workspace.persist()
    logger.info(f"Removed {kind.value} draft {draft_id} from session {workspace.session_id}")
    return success_response({"deleted": True})
