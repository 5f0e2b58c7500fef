"""Request bodies of the stage HTTP API."""

from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field

from .ingestion import StockImage, Suggestion


class AddDraftsRequest(BaseModel):
    """Drafts to append; ids and selection are assigned by the stage."""
    model_config = ConfigDict(extra="forbid")

    drafts: List[dict[str, Any]] = Field(min_length=1)


class UpdateDraftRequest(BaseModel):
    """Partial update: only the given fields change."""
    model_config = ConfigDict(extra="forbid")

    fields: dict[str, Any] = Field(min_length=1)


class PromptUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt: str


class IngestRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompts: List[Suggestion] = Field(min_length=1)


class StockIngestRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    images: List[StockImage] = Field(min_length=1)


class RegenerateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    draft_ids: List[int] = Field(min_length=1)


class SelectModelRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    model_id: str
