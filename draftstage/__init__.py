"""Draft stage: generation and versioning of text, image and video drafts."""

__version__ = "1.0.0"
