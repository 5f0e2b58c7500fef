"""Per-session stage workspace and its registry.

A Workspace bundles everything one working session needs: the draft
collection plus the coordinator, history, resolver and ingestion adapter
bound to it. The registry hands out one workspace per session id and shares
the provider gateway and stores between them.

Backends are picked from STAGE_STORE_BACKEND ("mongo" by default, "memory"
for tests or when MongoDB is unavailable).
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Optional

from draftstage.models import GENERATABLE_KINDS, GenerationEvent
from draftstage.providers import ProviderGateway, build_default_gateway
from draftstage.services.asset_store import BaseAssetStore, GridFSAssetStore, InMemoryAssetStore
from draftstage.services.download_resolver import DownloadResolver, HighResolutionSource
from draftstage.services.draft_collection import DraftCollection
from draftstage.services.generation_coordinator import GenerationCoordinator
from draftstage.services.ingestion import IngestionAdapter
from draftstage.services.remote_fetch import Fetcher, HttpFetcher
from draftstage.services.snapshot_history import (
    BaseSnapshotStore,
    InMemorySnapshotStore,
    MongoSnapshotStore,
    SnapshotHistory,
)
from draftstage.services.state_store import BaseStateStore, InMemoryStateStore, MongoStateStore

logger = logging.getLogger(__name__)


class Workspace:
    """The stage of one session.

    Usage:
        async with await Workspace.open("s1", gateway, state_store=store) as ws:
            ws.ingestion.on_incoming_prompts(["A fox"], DraftKind.image)
            await ws.coordinator.generate(DraftKind.image, 1)
    """

    def __init__(
        self,
        session_id: str,
        gateway: ProviderGateway,
        collection: DraftCollection | None = None,
        asset_store: BaseAssetStore | None = None,
        snapshot_store: BaseSnapshotStore | None = None,
        state_store: BaseStateStore | None = None,
        fetcher: Fetcher | None = None,
        high_resolution: HighResolutionSource | None = None,
        poll_interval: float | None = None,
    ):
        self.session_id = session_id
        self.collection = collection or DraftCollection()
        self._state_store = state_store
        self._pending: set[asyncio.Task] = set()

        self.coordinator = GenerationCoordinator(
            self.collection,
            gateway,
            asset_store=asset_store,
            fetcher=fetcher,
            session_id=session_id,
            poll_interval=poll_interval,
            on_event=self._on_generation_event,
        )
        self.history = SnapshotHistory(snapshot_store, session_id=session_id)
        self.resolver = DownloadResolver(
            self.collection,
            asset_store=asset_store,
            fetcher=fetcher,
            high_resolution=high_resolution,
            session_id=session_id,
        )
        self.ingestion = IngestionAdapter(self.collection)

    @classmethod
    async def open(
        cls,
        session_id: str,
        gateway: ProviderGateway,
        state_store: BaseStateStore | None = None,
        **kwargs: Any,
    ) -> "Workspace":
        """Build a workspace, restoring persisted drafts if any.

        Video drafts that were still generating resume polling; other
        interrupted generations are marked as failed.
        """
        collection = None
        if state_store is not None:
            state = await state_store.load(session_id)
            if state:
                collection = DraftCollection.from_state(state)
                logger.info(f"Loaded stage state of session {session_id}")

        workspace = cls(session_id, gateway, collection=collection, state_store=state_store, **kwargs)
        for kind in GENERATABLE_KINDS:
            workspace.coordinator.resume(kind)
        return workspace

    async def persist(self) -> None:
        """Write the collection to the state store (no-op without one)."""
        if self._state_store is None:
            return
        await self._state_store.save(self.session_id, self.collection.to_state())

    def _on_generation_event(self, event: GenerationEvent) -> None:
        if self._state_store is None:
            return
        task = asyncio.ensure_future(self.persist())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        task.add_done_callback(_log_persist_failure)

    async def aclose(self) -> None:
        """Stop polling and flush state."""
        await self.coordinator.aclose()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self.persist()
        logger.info(f"Closed workspace of session {self.session_id}")

    async def __aenter__(self) -> "Workspace":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def _log_persist_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"Failed to persist stage state: {task.exception()}")


class WorkspaceRegistry:
    """One Workspace per session id, sharing gateway and stores."""

    def __init__(
        self,
        gateway: ProviderGateway | None = None,
        asset_store: BaseAssetStore | None = None,
        snapshot_store: BaseSnapshotStore | None = None,
        state_store: BaseStateStore | None = None,
        fetcher: Fetcher | None = None,
        high_resolution: HighResolutionSource | None = None,
        poll_interval: float | None = None,
    ):
        self.gateway = gateway or build_default_gateway()
        self.asset_store = asset_store
        self.snapshot_store = snapshot_store
        self.state_store = state_store
        self.fetcher = fetcher
        self.high_resolution = high_resolution
        self._poll_interval = poll_interval
        self._workspaces: dict[str, Workspace] = {}
        self._lock = asyncio.Lock()

    async def get(self, session_id: str) -> Workspace:
        """Return the session's workspace, opening it on first use."""
        async with self._lock:
            workspace = self._workspaces.get(session_id)
            if workspace is None:
                workspace = await Workspace.open(
                    session_id,
                    self.gateway,
                    state_store=self.state_store,
                    asset_store=self.asset_store,
                    snapshot_store=self.snapshot_store,
                    fetcher=self.fetcher,
                    high_resolution=self.high_resolution,
                    poll_interval=self._poll_interval,
                )
                self._workspaces[session_id] = workspace
            return workspace

    def sessions(self) -> list[str]:
        return list(self._workspaces)

    async def close(self, session_id: str) -> bool:
        async with self._lock:
            workspace = self._workspaces.pop(session_id, None)
        if workspace is None:
            return False
        await workspace.aclose()
        return True

    async def close_all(self) -> None:
        """Close every workspace and release shared clients."""
        async with self._lock:
            workspaces, self._workspaces = list(self._workspaces.values()), {}
        for workspace in workspaces:
            await workspace.aclose()
        await self.gateway.aclose()
        for client in (self.fetcher, self.high_resolution):
            if client is not None and hasattr(client, "aclose"):
                await client.aclose()
        logger.info(f"Closed {len(workspaces)} workspaces")


# Module-level singleton instance
_default_registry: Optional[WorkspaceRegistry] = None


def build_registry() -> WorkspaceRegistry:
    """Registry wired from environment configuration."""
    use_mongo = os.getenv("STAGE_STORE_BACKEND", "mongo").lower() == "mongo"
    if use_mongo:
        logger.info("Using MongoDB stage stores")
        stores = {
            "asset_store": GridFSAssetStore(),
            "snapshot_store": MongoSnapshotStore(),
            "state_store": MongoStateStore(),
        }
    else:
        logger.info("Using in-memory stage stores")
        stores = {
            "asset_store": InMemoryAssetStore(),
            "snapshot_store": InMemorySnapshotStore(),
            "state_store": InMemoryStateStore(),
        }
    return WorkspaceRegistry(
        fetcher=HttpFetcher(),
        high_resolution=HighResolutionSource(),
        **stores,
    )


def get_registry() -> WorkspaceRegistry:
    """Get the default registry singleton."""
    global _default_registry
    if _default_registry is None:
        _default_registry = build_registry()
    return _default_registry


def set_registry(registry: Optional[WorkspaceRegistry]) -> None:
    """Set the registry instance (for testing)."""
    global _default_registry
    _default_registry = registry
