"""Unit tests for draft, snapshot and provider models.

Tests cover:
- Discriminated union parsing on kind
- Status transition edges
- Field validation (extra fields, duration bounds)
- Snapshot immutability and deep copies
- Model registry lookups
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from draftstage.errors import InvalidTransitionError, ValidationError, is_model_unavailable, ModelUnavailableError
from draftstage.models import (
    ALLOWED_TRANSITIONS,
    DEFAULT_IMAGE_MODEL,
    DEFAULT_VIDEO_MODEL,
    DraftKind,
    DraftStatus,
    ImageDraft,
    Snapshot,
    TextDraft,
    VideoDraft,
    can_transition,
    check_transition,
    draft_model,
    is_known_model,
    models_for,
    new_snapshot_id,
    parse_draft,
)


class TestDraftUnion:
    """Parsing drafts by kind."""

    def test_parse_text_draft(self):
        draft = parse_draft({"kind": "text", "id": 1, "content": "Hello"})
        assert isinstance(draft, TextDraft)
        assert draft.content == "Hello"

    def test_parse_image_draft_defaults(self):
        draft = parse_draft({"kind": "image", "prompt": "A fox"})
        assert isinstance(draft, ImageDraft)
        assert draft.status == DraftStatus.pending
        assert draft.width == 1024
        assert draft.meta.asset_id is None

    def test_parse_video_draft(self):
        draft = parse_draft({"kind": "video", "prompt": "Waves", "duration": 5})
        assert isinstance(draft, VideoDraft)
        assert draft.duration == 5
        assert draft.job_id is None

    def test_unknown_kind_rejected(self):
        with pytest.raises(PydanticValidationError):
            parse_draft({"kind": "audio", "prompt": "x"})

    def test_extra_fields_forbidden(self):
        with pytest.raises(PydanticValidationError):
            ImageDraft(prompt="x", colour="blue")

    def test_video_duration_bounds(self):
        with pytest.raises(PydanticValidationError):
            VideoDraft(duration=11)
        with pytest.raises(PydanticValidationError):
            VideoDraft(duration=0)

    def test_tags_serialized_sorted(self):
        draft = TextDraft(tags={"b", "a", "c"})
        assert draft.model_dump()["tags"] == ["a", "b", "c"]

    def test_draft_model_lookup(self):
        assert draft_model("video") is VideoDraft
        with pytest.raises(ValidationError):
            draft_model("audio")


class TestTransitions:
    """Draft status machine."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (DraftStatus.pending, DraftStatus.generating),
            (DraftStatus.generating, DraftStatus.completed),
            (DraftStatus.generating, DraftStatus.error),
            (DraftStatus.completed, DraftStatus.generating),
            (DraftStatus.error, DraftStatus.generating),
        ],
    )
    def test_allowed_edges(self, current, target):
        assert can_transition(current, target)
        check_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (DraftStatus.pending, DraftStatus.completed),
            (DraftStatus.pending, DraftStatus.error),
            (DraftStatus.completed, DraftStatus.pending),
            (DraftStatus.error, DraftStatus.completed),
            (DraftStatus.generating, DraftStatus.pending),
        ],
    )
    def test_rejected_edges(self, current, target):
        assert not can_transition(current, target)
        with pytest.raises(InvalidTransitionError) as exc_info:
            check_transition(current, target)
        assert exc_info.value.code == "INVALID_TRANSITION"

    def test_every_status_has_an_exit(self):
        assert set(ALLOWED_TRANSITIONS) == set(DraftStatus)


class TestSnapshotModel:
    """Snapshot immutability."""

    def test_snapshot_is_frozen(self):
        snapshot = Snapshot(text_drafts=[TextDraft(id=1)])
        with pytest.raises(PydanticValidationError):
            snapshot.session_id = "other"

    def test_copy_deep_is_independent(self):
        snapshot = Snapshot(image_drafts=[ImageDraft(id=1, prompt="A fox")])
        copy = snapshot.copy_deep()
        copy.image_drafts[0].prompt = "Changed"
        assert snapshot.image_drafts[0].prompt == "A fox"
        assert copy.id == snapshot.id

    def test_ids_are_time_ordered(self):
        first = new_snapshot_id()
        second = new_snapshot_id()
        assert first[:13] <= second[:13]
        assert first != second

    def test_summary_counts(self):
        snapshot = Snapshot(
            text_drafts=[TextDraft(id=1), TextDraft(id=2)],
            image_drafts=[ImageDraft(id=1, url="/uploads/images/a.png"), ImageDraft(id=2, url="")],
        )
        summary = snapshot.summary()
        assert summary.text_count == 2
        assert summary.image_count == 2
        assert summary.thumbnails == ["/uploads/images/a.png"]


class TestModelRegistry:
    """Provider model registry."""

    def test_defaults_are_registered(self):
        assert is_known_model(DraftKind.image, DEFAULT_IMAGE_MODEL)
        assert is_known_model(DraftKind.video, DEFAULT_VIDEO_MODEL)

    def test_models_are_kind_scoped(self):
        assert not is_known_model(DraftKind.image, DEFAULT_VIDEO_MODEL)
        assert models_for(DraftKind.text) == []

    @pytest.mark.parametrize(
        "message",
        [
            "Model foo is not available",
            "unknown model: bar",
            "model_not_found",
            "The requested model does not exist",
        ],
    )
    def test_model_unavailable_detection(self, message):
        assert is_model_unavailable(message)

    def test_other_errors_are_not_model_unavailable(self):
        assert not is_model_unavailable("rate limit exceeded")
        assert not is_model_unavailable(None)
        assert is_model_unavailable(ModelUnavailableError("gone", model_id="x"))
