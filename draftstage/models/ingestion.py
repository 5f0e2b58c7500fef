"""Inbound records turned into drafts by the ingestion adapter."""

from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class PromptSuggestion(BaseModel):
    """A prompt suggested by an upstream source (chat, analyzer, user).

    For text drafts ``content`` is the suggested text; when omitted the prompt
    itself is used.
    """
    model_config = ConfigDict(extra="forbid")

    prompt: str = Field(min_length=1)
    content: Optional[str] = None
    title: str = ""
    content_type: str = ""
    style_variant: str = ""
    tags: List[str] = Field(default_factory=list)
    source_context: str = ""


# Plain strings are accepted wherever a suggestion is
Suggestion = Union[str, PromptSuggestion]


class StockImage(BaseModel):
    """One stock search result chosen by the user."""
    model_config = ConfigDict(extra="forbid")

    id: str
    full_size_url: str
    thumbnail_url: Optional[str] = None
    title: Optional[str] = None
    provider: str = Field(description="Stock provider id, e.g. pixabay")
    provider_name: Optional[str] = None
    author: Optional[str] = None
    license_info: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
