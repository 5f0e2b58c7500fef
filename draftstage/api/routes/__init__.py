"""API routes package."""

from . import assets, downloads, drafts, generation, health, history, ingest

__all__ = ["assets", "downloads", "drafts", "generation", "health", "history", "ingest"]
