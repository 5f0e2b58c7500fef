"""Stage models package.

Note: keep these models as the source-of-truth schemas for the API and the
persisted state records.
"""

from .api import (
    AddDraftsRequest,
    IngestRequest,
    PromptUpdateRequest,
    RegenerateRequest,
    SelectModelRequest,
    StockIngestRequest,
    UpdateDraftRequest,
)
from .drafts import (
    ALLOWED_TRANSITIONS,
    GENERATABLE_KINDS,
    CollectionView,
    Draft,
    DraftBase,
    DraftKind,
    DraftStatus,
    GeneratableDraft,
    ImageDraft,
    ImageMeta,
    TextDraft,
    VideoDraft,
    can_transition,
    check_transition,
    draft_model,
    parse_draft,
)
from .generation_job import (
    CancellationToken,
    GenerationEvent,
    GenerationJob,
    JobStatus,
)
from .ingestion import PromptSuggestion, StockImage, Suggestion
from .provider import (
    AVAILABLE_MODELS,
    DEFAULT_IMAGE_MODEL,
    DEFAULT_MODELS,
    DEFAULT_VIDEO_MODEL,
    GenerationModel,
    PollResult,
    PollStatus,
    SubmitResult,
    is_known_model,
    models_for,
)
from .snapshot import Snapshot, SnapshotSummary, new_snapshot_id

__all__ = [
    # API requests
    "AddDraftsRequest",
    "IngestRequest",
    "PromptUpdateRequest",
    "RegenerateRequest",
    "SelectModelRequest",
    "StockIngestRequest",
    "UpdateDraftRequest",
    # Drafts
    "ALLOWED_TRANSITIONS",
    "GENERATABLE_KINDS",
    "CollectionView",
    "Draft",
    "DraftBase",
    "DraftKind",
    "DraftStatus",
    "GeneratableDraft",
    "ImageDraft",
    "ImageMeta",
    "TextDraft",
    "VideoDraft",
    "can_transition",
    "check_transition",
    "draft_model",
    "parse_draft",
    # Jobs
    "CancellationToken",
    "GenerationEvent",
    "GenerationJob",
    "JobStatus",
    # Ingestion
    "PromptSuggestion",
    "StockImage",
    "Suggestion",
    # Providers
    "AVAILABLE_MODELS",
    "DEFAULT_IMAGE_MODEL",
    "DEFAULT_MODELS",
    "DEFAULT_VIDEO_MODEL",
    "GenerationModel",
    "PollResult",
    "PollStatus",
    "SubmitResult",
    "is_known_model",
    "models_for",
    # Snapshots
    "Snapshot",
    "SnapshotSummary",
    "new_snapshot_id",
]
