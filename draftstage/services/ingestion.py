"""Ingestion of externally sourced suggestions into the stage.

Text suggestions become complete text drafts right away. Image and video
suggestions become pending drafts that the user generates later. Ingestion
always appends; existing drafts are never cleared.
"""

from __future__ import annotations

import logging
import os
from typing import Iterable

from draftstage.errors import ValidationError
from draftstage.models import (
    DraftBase,
    DraftKind,
    DraftStatus,
    ImageDraft,
    ImageMeta,
    PromptSuggestion,
    StockImage,
    Suggestion,
    TextDraft,
    VideoDraft,
)
from draftstage.services.draft_collection import DraftCollection

logger = logging.getLogger(__name__)

DEFAULT_PLACEHOLDER_URL = "/images/placeholder.svg"

# model_id marking drafts that come from a stock search
STOCK_MODEL_ID = "stock"


def _as_suggestion(item: Suggestion) -> PromptSuggestion:
    if isinstance(item, PromptSuggestion):
        return item
    if isinstance(item, str) and item.strip():
        return PromptSuggestion(prompt=item.strip())
    raise ValidationError(f"Invalid prompt suggestion: {item!r}")


class IngestionAdapter:
    """Converts suggestions and stock results into drafts of a collection."""

    def __init__(self, collection: DraftCollection, placeholder_url: str | None = None):
        self._collection = collection
        self._placeholder_url = placeholder_url or os.environ.get(
            "STAGE_PLACEHOLDER_URL", DEFAULT_PLACEHOLDER_URL
        )

    @property
    def placeholder_url(self) -> str:
        return self._placeholder_url

    def on_incoming_prompts(self, prompts: Iterable[Suggestion], kind: DraftKind | str) -> list[DraftBase]:
        """Append one draft per suggestion and return the stored drafts.

        Raises:
            ValidationError: Empty or malformed suggestion. Nothing is added.
        """
        kind = DraftKind(kind)
        suggestions = [_as_suggestion(p) for p in prompts]
        drafts = [self._to_draft(kind, s) for s in suggestions]
        added = self._collection.add(kind, drafts)
        logger.info(f"Ingested {len(added)} {kind.value} suggestions")
        return added

    def on_stock_images(self, images: Iterable[StockImage]) -> list[DraftBase]:
        """Append completed image drafts for chosen stock search results."""
        drafts = []
        for index, image in enumerate(images, start=1):
            title = image.title or f"Stock image {index}"
            source = image.provider_name or image.provider
            drafts.append(
                ImageDraft(
                    title=title,
                    prompt=f"Stock image: {image.title or 'untitled'} (source: {source})",
                    model_id=STOCK_MODEL_ID,
                    status=DraftStatus.completed,
                    url=image.full_size_url,
                    tags=set(image.tags),
                    source_context=f"stock:{image.provider}",
                    meta=ImageMeta(
                        provider=image.provider,
                        author=image.author or "unknown",
                        license_info=image.license_info or "standard license",
                        stock_image_id=image.id,
                        tags=list(image.tags),
                    ),
                )
            )
        added = self._collection.add(DraftKind.image, drafts)
        logger.info(f"Ingested {len(added)} stock images")
        return added

    def _to_draft(self, kind: DraftKind, suggestion: PromptSuggestion) -> DraftBase:
        common = {
            "title": suggestion.title,
            "prompt": suggestion.prompt,
            "tags": set(suggestion.tags),
            "source_context": suggestion.source_context,
        }
        if kind == DraftKind.text:
            return TextDraft(
                content=suggestion.content or suggestion.prompt,
                content_type=suggestion.content_type,
                style_variant=suggestion.style_variant,
                **common,
            )
        if kind == DraftKind.image:
            return ImageDraft(status=DraftStatus.pending, url=self._placeholder_url, **common)
        return VideoDraft(status=DraftStatus.pending, **common)
