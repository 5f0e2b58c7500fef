"""Snapshot history for a stage session.

Captures deep copies of the text and image drafts, lists them newest first
and restores one wholesale into a collection.

Supports two backends:
1. MongoDB (durable) - history survives server restart
2. In-memory (fallback) - for testing or when MongoDB unavailable

History is bounded (STAGE_SNAPSHOT_LIMIT, default 50): a capture beyond the
bound evicts the oldest snapshots.
"""

from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

from draftstage.errors import ValidationError
from draftstage.models import DraftKind, Snapshot, SnapshotSummary
from draftstage.services.draft_collection import DraftCollection

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_LIMIT = 50

# Collection name for MongoDB storage
SNAPSHOTS_COLLECTION = "stage_snapshots"


class BaseSnapshotStore(ABC):
    """Abstract base class for snapshot stores. Snapshots are per session."""

    @abstractmethod
    async def load(self, session_id: str) -> list[Snapshot]:
        """Return a session's snapshots, oldest first."""
        pass

    @abstractmethod
    async def save(self, snapshot: Snapshot) -> None:
        """Persist one snapshot."""
        pass

    @abstractmethod
    async def delete(self, session_id: str, snapshot_ids: list[str]) -> int:
        """Delete snapshots by id. Returns the number removed."""
        pass

    @abstractmethod
    async def clear(self, session_id: str) -> int:
        """Delete every snapshot of a session. Returns the number removed."""
        pass


class InMemorySnapshotStore(BaseSnapshotStore):
    """Dict-backed snapshot store. History is lost on restart."""

    def __init__(self) -> None:
        self._snapshots: dict[str, list[Snapshot]] = {}
        self._lock = asyncio.Lock()

    async def load(self, session_id: str) -> list[Snapshot]:
        async with self._lock:
            return [s.copy_deep() for s in self._snapshots.get(session_id, [])]

    async def save(self, snapshot: Snapshot) -> None:
        async with self._lock:
            self._snapshots.setdefault(snapshot.session_id, []).append(snapshot.copy_deep())

    async def delete(self, session_id: str, snapshot_ids: list[str]) -> int:
        async with self._lock:
            existing = self._snapshots.get(session_id, [])
            kept = [s for s in existing if s.id not in snapshot_ids]
            self._snapshots[session_id] = kept
            return len(existing) - len(kept)

    async def clear(self, session_id: str) -> int:
        async with self._lock:
            return len(self._snapshots.pop(session_id, []))


class MongoSnapshotStore(BaseSnapshotStore):
    """MongoDB-backed snapshot store, one document per snapshot."""

    def __init__(self) -> None:
        self._index_created = False

    async def _get_collection(self):
        """Get the MongoDB collection."""
        from draftstage.db.mongo import get_database
        db = await get_database()
        return db[SNAPSHOTS_COLLECTION]

    async def ensure_indexes(self) -> None:
        if self._index_created:
            return

        try:
            collection = await self._get_collection()
            await collection.create_index("snapshot_id", unique=True)
            await collection.create_index([("session_id", 1), ("timestamp", 1)])
            self._index_created = True
            logger.info("MongoDB snapshot store indexes created")
        except Exception as e:
            logger.warning(f"Failed to create MongoDB snapshot indexes: {e}")

    def _snapshot_to_doc(self, snapshot: Snapshot) -> dict:
        doc = snapshot.model_dump(mode="json")
        doc["snapshot_id"] = doc.pop("id")
        doc["timestamp"] = snapshot.timestamp
        return doc

    def _doc_to_snapshot(self, doc: dict) -> Snapshot:
        return Snapshot(
            id=doc["snapshot_id"],
            timestamp=doc["timestamp"],
            session_id=doc.get("session_id"),
            text_drafts=doc.get("text_drafts", []),
            image_drafts=doc.get("image_drafts", []),
        )

    async def load(self, session_id: str) -> list[Snapshot]:
        collection = await self._get_collection()
        cursor = collection.find({"session_id": session_id}).sort([("timestamp", 1), ("snapshot_id", 1)])
        docs = await cursor.to_list(length=None)
        return [self._doc_to_snapshot(doc) for doc in docs]

    async def save(self, snapshot: Snapshot) -> None:
        await self.ensure_indexes()
        collection = await self._get_collection()
        await collection.insert_one(self._snapshot_to_doc(snapshot))
        logger.debug(f"Saved snapshot {snapshot.id} to MongoDB")

    async def delete(self, session_id: str, snapshot_ids: list[str]) -> int:
        collection = await self._get_collection()
        result = await collection.delete_many(
            {"session_id": session_id, "snapshot_id": {"$in": list(snapshot_ids)}}
        )
        return result.deleted_count

    async def clear(self, session_id: str) -> int:
        collection = await self._get_collection()
        result = await collection.delete_many({"session_id": session_id})
        logger.info(f"Cleared {result.deleted_count} snapshots of session {session_id}")
        return result.deleted_count


class SnapshotHistory:
    """Ordered snapshot history of one session.

    The history is loaded from the store on first access. capture, list and
    clear_all serialize on one lock, so a listing never observes a half
    written capture.

    Usage:
        history = SnapshotHistory(InMemorySnapshotStore(), session_id="s1")
        snapshot = await history.capture(collection)
        await history.restore_into(snapshot.id, collection)
    """

    def __init__(
        self,
        store: BaseSnapshotStore | None = None,
        session_id: str = "default",
        limit: int | None = None,
    ):
        self._store = store or InMemorySnapshotStore()
        self._session_id = session_id
        self._limit = limit if limit is not None else int(
            os.environ.get("STAGE_SNAPSHOT_LIMIT", DEFAULT_SNAPSHOT_LIMIT)
        )
        if self._limit < 1:
            raise ValidationError(f"Snapshot limit must be positive, got {self._limit}")
        self._snapshots: Optional[list[Snapshot]] = None
        self._lock = asyncio.Lock()

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def limit(self) -> int:
        return self._limit

    async def _ensure_loaded(self) -> list[Snapshot]:
        """Load history once. Must be called with the lock held."""
        if self._snapshots is None:
            self._snapshots = await self._store.load(self._session_id)
            logger.debug(f"Loaded {len(self._snapshots)} snapshots for session {self._session_id}")
        return self._snapshots

    async def capture(self, collection: DraftCollection) -> Snapshot:
        """Record the current text and image drafts as a new snapshot."""
        snapshot = Snapshot(
            session_id=self._session_id,
            text_drafts=collection.list(DraftKind.text),
            image_drafts=collection.list(DraftKind.image),
        )
        async with self._lock:
            snapshots = await self._ensure_loaded()
            await self._store.save(snapshot)
            snapshots.append(snapshot)

            overflow = len(snapshots) - self._limit
            if overflow > 0:
                evicted = [s.id for s in snapshots[:overflow]]
                del snapshots[:overflow]
                await self._store.delete(self._session_id, evicted)
                logger.info(f"Evicted {overflow} oldest snapshots of session {self._session_id}")

        logger.info(
            f"Captured snapshot {snapshot.id} "
            f"({len(snapshot.text_drafts)} text, {len(snapshot.image_drafts)} image drafts)"
        )
        return snapshot.copy_deep()

    async def list(self) -> list[Snapshot]:
        """Return all snapshots, newest first."""
        async with self._lock:
            snapshots = await self._ensure_loaded()
            return [s.copy_deep() for s in reversed(snapshots)]

    async def summaries(self) -> list[SnapshotSummary]:
        return [s.summary() for s in await self.list()]

    async def restore_by_id(self, snapshot_id: str) -> Optional[Snapshot]:
        """Return a deep copy of a snapshot, or None. History is unchanged."""
        async with self._lock:
            snapshots = await self._ensure_loaded()
            for snapshot in snapshots:
                if snapshot.id == snapshot_id:
                    return snapshot.copy_deep()
        return None

    async def restore_into(self, snapshot_id: str, collection: DraftCollection) -> Optional[Snapshot]:
        """Replace the collection's text and image drafts with a snapshot.

        Video drafts are left as they are. Image drafts captured while
        generating come back as ``error`` since no job backs them. Returns the
        restored snapshot, or None (collection untouched) if the id is unknown.
        """
        snapshot = await self.restore_by_id(snapshot_id)
        if snapshot is None:
            logger.warning(f"Snapshot {snapshot_id} not found in session {self._session_id}")
            return None

        collection.replace(DraftKind.text, snapshot.text_drafts)
        collection.replace(DraftKind.image, snapshot.image_drafts)
        collection.interrupt_generating(DraftKind.image)
        logger.info(f"Restored snapshot {snapshot_id}")
        return snapshot

    async def clear_all(self, confirm: bool = False) -> int:
        """Delete the whole history. Irreversible, so ``confirm`` must be True.

        Raises:
            ValidationError: If not confirmed.
        """
        if not confirm:
            raise ValidationError("Clearing snapshot history requires confirmation")
        async with self._lock:
            removed = await self._store.clear(self._session_id)
            self._snapshots = []
        logger.info(f"Cleared snapshot history of session {self._session_id} ({removed} removed)")
        return removed
