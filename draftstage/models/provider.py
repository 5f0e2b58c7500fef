"""Vendor-neutral provider contract models and the model registry.

Every generation provider speaks this shape, whatever its wire protocol:
- submit -> SubmitResult (direct output url, or a job id to poll)
- poll -> PollResult

Pydantic v2. Extra fields are forbidden to prevent drift.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .drafts import DraftKind


class PollStatus(str, Enum):
    processing = "processing"
    completed = "completed"
    failed = "failed"


class SubmitResult(BaseModel):
    """Outcome of a submit call."""
    model_config = ConfigDict(extra="forbid")

    success: bool
    output_url: Optional[str] = Field(default=None, description="Set when the provider answers synchronously")
    job_id: Optional[str] = Field(default=None, description="Set when the result must be polled")
    error: Optional[str] = None


class PollResult(BaseModel):
    """Outcome of one poll tick."""
    model_config = ConfigDict(extra="forbid")

    status: PollStatus
    output_url: Optional[str] = None
    error: Optional[str] = None

    def is_terminal(self) -> bool:
        return self.status in (PollStatus.completed, PollStatus.failed)


class GenerationModel(BaseModel):
    """A model the stage may submit to."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    name: str
    provider: str
    kind: DraftKind
    description: str = ""


DEFAULT_IMAGE_MODEL = "stabilityai/stable-diffusion-xl-base-1.0"
DEFAULT_VIDEO_MODEL = "gen3a_turbo"

AVAILABLE_MODELS: tuple[GenerationModel, ...] = (
    GenerationModel(
        id=DEFAULT_IMAGE_MODEL,
        name="Stable Diffusion XL",
        provider="together",
        kind=DraftKind.image,
        description="Good balance of speed and detail",
    ),
    GenerationModel(
        id="black-forest-labs/FLUX.1-dev",
        name="FLUX.1 (Dev)",
        provider="together",
        kind=DraftKind.image,
    ),
    GenerationModel(
        id="black-forest-labs/FLUX.1",
        name="FLUX.1",
        provider="together",
        kind=DraftKind.image,
    ),
    GenerationModel(
        id="runwayml/stable-diffusion-v1-5",
        name="Stable Diffusion 1.5",
        provider="together",
        kind=DraftKind.image,
    ),
    GenerationModel(
        id=DEFAULT_VIDEO_MODEL,
        name="Runway Gen-3 Alpha Turbo",
        provider="runway",
        kind=DraftKind.video,
    ),
    GenerationModel(
        id="gen4_turbo",
        name="Runway Gen-4 Turbo",
        provider="runway",
        kind=DraftKind.video,
    ),
)

DEFAULT_MODELS: dict[DraftKind, str] = {
    DraftKind.image: DEFAULT_IMAGE_MODEL,
    DraftKind.video: DEFAULT_VIDEO_MODEL,
}


def models_for(kind: DraftKind | str) -> list[GenerationModel]:
    """List registered models for a draft kind."""
    return [m for m in AVAILABLE_MODELS if m.kind == DraftKind(kind)]


def is_known_model(kind: DraftKind | str, model_id: str) -> bool:
    return any(m.id == model_id for m in models_for(kind))
