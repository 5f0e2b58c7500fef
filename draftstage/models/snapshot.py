"""Snapshot models for stage history.

A snapshot is a frozen, deep copy of the text and image drafts at capture
time. Video drafts are not part of a snapshot.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from .drafts import ImageDraft, TextDraft


def _utcnow() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def new_snapshot_id() -> str:
    """Time-ordered opaque id: zero-padded epoch millis plus a random suffix.

    Lexicographic order matches capture order across milliseconds.
    """
    return f"{int(time.time() * 1000):013d}-{uuid4().hex[:8]}"


class Snapshot(BaseModel):
    """Immutable copy of the stage."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=new_snapshot_id)
    timestamp: datetime = Field(default_factory=_utcnow)
    session_id: Optional[str] = Field(default=None, description="Working session the snapshot belongs to")
    text_drafts: List[TextDraft] = Field(default_factory=list)
    image_drafts: List[ImageDraft] = Field(default_factory=list)

    def copy_deep(self) -> "Snapshot":
        """Return a structurally independent copy."""
        return Snapshot.model_validate(self.model_dump())

    def summary(self) -> "SnapshotSummary":
        return SnapshotSummary(
            id=self.id,
            timestamp=self.timestamp,
            text_count=len(self.text_drafts),
            image_count=len(self.image_drafts),
            thumbnails=[d.url for d in self.image_drafts if d.url],
        )


class SnapshotSummary(BaseModel):
    """History listing entry for the presentation layer."""
    model_config = ConfigDict(extra="forbid")

    id: str
    timestamp: datetime
    text_count: int = Field(ge=0)
    image_count: int = Field(ge=0)
    thumbnails: List[str] = Field(default_factory=list, description="Urls of contained image drafts")
