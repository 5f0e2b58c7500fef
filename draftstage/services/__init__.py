"""Services package for stage business logic."""

from .download_resolver import DownloadResolver, DownloadResult, DownloadTier
from .draft_collection import DraftCollection
from .generation_coordinator import GenerationCoordinator, RegenerationResult
from .ingestion import IngestionAdapter
from .snapshot_history import SnapshotHistory
from .workspace import Workspace, WorkspaceRegistry, get_registry, set_registry

__all__ = [
    "DownloadResolver",
    "DownloadResult",
    "DownloadTier",
    "DraftCollection",
    "GenerationCoordinator",
    "IngestionAdapter",
    "RegenerationResult",
    "SnapshotHistory",
    "Workspace",
    "WorkspaceRegistry",
    "get_registry",
    "set_registry",
]
