"""Draft models for the stage.

A draft is a candidate piece of content awaiting user curation. Drafts are a
tagged union on ``kind``:

1) TextDraft: complete as soon as it exists (no generation phase).
2) ImageDraft / VideoDraft: carry a generation status and a url that moves
   from placeholder to provider url to locally persisted path.

Pydantic v2. Extra fields are forbidden to prevent drift.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_serializer

from draftstage.errors import InvalidTransitionError, ValidationError


class DraftKind(str, Enum):
    """Discriminant of the draft union (one collection per kind)."""
    text = "text"
    image = "image"
    video = "video"


class DraftStatus(str, Enum):
    """Generation status of an image or video draft."""
    pending = "pending"
    generating = "generating"
    completed = "completed"
    error = "error"


# Every other status change is rejected.
ALLOWED_TRANSITIONS: dict[DraftStatus, frozenset[DraftStatus]] = {
    DraftStatus.pending: frozenset({DraftStatus.generating}),
    DraftStatus.generating: frozenset({DraftStatus.completed, DraftStatus.error}),
    DraftStatus.completed: frozenset({DraftStatus.generating}),
    DraftStatus.error: frozenset({DraftStatus.generating}),
}

GENERATABLE_KINDS = frozenset({DraftKind.image, DraftKind.video})


def can_transition(current: DraftStatus, target: DraftStatus) -> bool:
    """Return True if ``current -> target`` is a documented edge."""
    return DraftStatus(target) in ALLOWED_TRANSITIONS[DraftStatus(current)]


def check_transition(current: DraftStatus, target: DraftStatus) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is allowed."""
    if not can_transition(current, target):
        raise InvalidTransitionError(DraftStatus(current).value, DraftStatus(target).value)


class DraftBase(BaseModel):
    """Fields shared by every draft kind."""
    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    id: int = Field(default=0, ge=0, description="Unique within its kind-collection; 0 until allocated")
    is_selected: bool = Field(default=False, description="At most one selected draft per kind")
    title: str = Field(default="", description="Display title")
    prompt: str = Field(default="", description="Prompt used (or to be used) for generation")
    tags: set[str] = Field(default_factory=set)
    source_context: str = Field(default="", description="Provenance of the suggestion")
    model_id: str = Field(default="", description="Generation model; empty means the session default")

    @field_serializer("tags")
    def _serialize_tags(self, tags: set[str]) -> list[str]:
        return sorted(tags)


class TextDraft(DraftBase):
    kind: Literal["text"] = "text"

    content: str = Field(default="", description="The text itself")
    content_type: str = Field(default="", description="e.g. story, blog post, caption")
    style_variant: str = Field(default="")


class GeneratableDraft(DraftBase):
    """Base for drafts produced by a provider job."""

    status: DraftStatus = Field(default=DraftStatus.pending)
    url: str = Field(default="", description="Placeholder, provider url or local persisted path")
    error: Optional[str] = Field(default=None, description="Last human-readable failure message")

    @property
    def is_busy(self) -> bool:
        return self.status == DraftStatus.generating


class ImageMeta(BaseModel):
    """Provider and licensing details for an image."""
    model_config = ConfigDict(extra="forbid")

    provider: Optional[str] = None
    author: Optional[str] = None
    license_info: Optional[str] = None
    stock_image_id: Optional[str] = None
    asset_id: Optional[str] = Field(default=None, description="Local asset id once persisted")
    tags: List[str] = Field(default_factory=list)


class ImageDraft(GeneratableDraft):
    kind: Literal["image"] = "image"

    width: Optional[int] = Field(default=1024, ge=1)
    height: Optional[int] = Field(default=1024, ge=1)
    meta: ImageMeta = Field(default_factory=ImageMeta)


class VideoDraft(GeneratableDraft):
    kind: Literal["video"] = "video"

    duration: int = Field(default=2, ge=1, le=10, description="Clip length in seconds")
    job_id: Optional[str] = Field(default=None, description="Opaque provider job handle")


Draft = Annotated[Union[TextDraft, ImageDraft, VideoDraft], Field(discriminator="kind")]

DRAFT_MODELS: dict[DraftKind, type[DraftBase]] = {
    DraftKind.text: TextDraft,
    DraftKind.image: ImageDraft,
    DraftKind.video: VideoDraft,
}

_draft_adapter: TypeAdapter = TypeAdapter(Draft)


def parse_draft(data: dict) -> Union[TextDraft, ImageDraft, VideoDraft]:
    """Build the right draft model from a dict carrying ``kind``."""
    return _draft_adapter.validate_python(data)


def draft_model(kind: DraftKind | str) -> type[DraftBase]:
    """Return the model class for a kind.

    Raises:
        ValidationError: If the kind is unknown.
    """
    try:
        return DRAFT_MODELS[DraftKind(kind)]
    except ValueError:
        raise ValidationError(f"Unknown draft kind: {kind}") from None


class CollectionView(BaseModel):
    """Read model of the stage: one list per kind, selection flags included."""
    model_config = ConfigDict(extra="forbid")

    text_drafts: List[TextDraft] = Field(default_factory=list)
    image_drafts: List[ImageDraft] = Field(default_factory=list)
    video_drafts: List[VideoDraft] = Field(default_factory=list)
