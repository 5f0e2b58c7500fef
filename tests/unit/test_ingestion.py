"""Unit tests for IngestionAdapter.

Tests cover:
- Text suggestions become complete text drafts
- Image suggestions become pending drafts with the placeholder url
- Video suggestions become pending drafts
- Plain strings and structured suggestions
- Empty suggestions are rejected without side effects
- Stock images become completed drafts with licensing metadata
- Ingestion appends and never clears
"""

import pytest

from draftstage.errors import ValidationError
from draftstage.models import (
    DraftKind,
    DraftStatus,
    ImageDraft,
    PromptSuggestion,
    StockImage,
)
from draftstage.services.ingestion import (
    DEFAULT_PLACEHOLDER_URL,
    STOCK_MODEL_ID,
    IngestionAdapter,
)


@pytest.fixture
def adapter(collection) -> IngestionAdapter:
    return IngestionAdapter(collection)


class TestPrompts:
    """Suggestion ingestion per kind."""

    def test_text_suggestions_complete(self, adapter, collection):
        added = adapter.on_incoming_prompts(
            [
                "Open with a question",
                PromptSuggestion(
                    prompt="Write a closing line",
                    content="Thanks for reading.",
                    content_type="blog post",
                    tags=["outro"],
                ),
            ],
            DraftKind.text,
        )

        assert [d.id for d in added] == [1, 2]
        assert added[0].content == "Open with a question"
        assert added[1].content == "Thanks for reading."
        assert added[1].content_type == "blog post"
        assert added[1].tags == {"outro"}
        assert collection.count(DraftKind.text) == 2

    def test_image_suggestions_pending_with_placeholder(self, adapter):
        added = adapter.on_incoming_prompts(["A fox at dawn", "A hare"], DraftKind.image)

        assert all(d.status == DraftStatus.pending for d in added)
        assert all(d.url == DEFAULT_PLACEHOLDER_URL for d in added)
        assert added[0].prompt == "A fox at dawn"

    def test_video_suggestions_pending(self, adapter):
        added = adapter.on_incoming_prompts(["Waves rolling in"], "video")

        assert added[0].status == DraftStatus.pending
        assert added[0].url == ""
        assert added[0].job_id is None

    def test_strings_are_stripped(self, adapter):
        added = adapter.on_incoming_prompts(["  A fox  "], DraftKind.image)
        assert added[0].prompt == "A fox"

    def test_provenance_kept(self, adapter):
        added = adapter.on_incoming_prompts(
            [PromptSuggestion(prompt="A fox", title="Cover", source_context="chat")],
            DraftKind.image,
        )
        assert added[0].title == "Cover"
        assert added[0].source_context == "chat"

    def test_empty_suggestion_rejected(self, adapter, collection):
        with pytest.raises(ValidationError):
            adapter.on_incoming_prompts(["A fox", "   "], DraftKind.image)
        assert collection.count(DraftKind.image) == 0

    def test_placeholder_from_env(self, collection, monkeypatch):
        monkeypatch.setenv("STAGE_PLACEHOLDER_URL", "/static/wait.png")
        adapter = IngestionAdapter(collection)

        added = adapter.on_incoming_prompts(["A fox"], DraftKind.image)

        assert adapter.placeholder_url == "/static/wait.png"
        assert added[0].url == "/static/wait.png"

    def test_ingestion_appends(self, adapter, collection):
        collection.add(DraftKind.image, [ImageDraft(prompt="Existing")])
        collection.select(DraftKind.image, 1)

        added = adapter.on_incoming_prompts(["A fox"], DraftKind.image)

        assert added[0].id == 2
        assert collection.count(DraftKind.image) == 2
        assert collection.selected(DraftKind.image).id == 1


class TestStockImages:
    """Stock search results."""

    def test_stock_images_completed_with_meta(self, adapter):
        added = adapter.on_stock_images(
            [
                StockImage(
                    id="px-1",
                    full_size_url="https://pixabay.example/full/1.jpg",
                    title="Mountain lake",
                    provider="pixabay",
                    provider_name="Pixabay",
                    author="jane",
                    tags=["lake", "mountain"],
                ),
                StockImage(id="un-2", full_size_url="https://unsplash.example/2.jpg", provider="unsplash"),
            ]
        )

        first, second = added
        assert first.status == DraftStatus.completed
        assert first.url == "https://pixabay.example/full/1.jpg"
        assert first.model_id == STOCK_MODEL_ID
        assert first.title == "Mountain lake"
        assert first.prompt == "Stock image: Mountain lake (source: Pixabay)"
        assert first.source_context == "stock:pixabay"
        assert first.meta.author == "jane"
        assert first.meta.license_info == "standard license"
        assert first.meta.stock_image_id == "px-1"
        assert first.meta.tags == ["lake", "mountain"]

        assert second.title == "Stock image 2"
        assert second.prompt == "Stock image: untitled (source: unsplash)"
        assert second.meta.author == "unknown"

    def test_stock_images_append(self, adapter, collection):
        adapter.on_incoming_prompts(["A fox"], DraftKind.image)
        added = adapter.on_stock_images(
            [StockImage(id="1", full_size_url="https://x.example/1.jpg", provider="pixabay")]
        )
        assert added[0].id == 2
        assert collection.count(DraftKind.image) == 2
