"""Persistence of serialized draft collections, one record per session.

Supports two backends:
1. MongoDB (durable) - the stage survives server restart
2. In-memory (fallback) - for testing or when MongoDB unavailable
"""

from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Collection name for MongoDB storage
STATE_COLLECTION = "stage_state"

State = dict[str, list[dict[str, Any]]]


class BaseStateStore(ABC):
    """Abstract base class for collection state stores."""

    @abstractmethod
    async def save(self, session_id: str, state: State) -> None:
        """Store (or overwrite) a session's serialized collection."""
        pass

    @abstractmethod
    async def load(self, session_id: str) -> Optional[State]:
        """Return a session's serialized collection, or None."""
        pass

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        pass


class InMemoryStateStore(BaseStateStore):
    """Dict-backed state store. State is lost on restart."""

    def __init__(self) -> None:
        self._states: dict[str, State] = {}
        self._lock = asyncio.Lock()

    async def save(self, session_id: str, state: State) -> None:
        async with self._lock:
            self._states[session_id] = copy.deepcopy(state)

    async def load(self, session_id: str) -> Optional[State]:
        async with self._lock:
            state = self._states.get(session_id)
            return copy.deepcopy(state) if state is not None else None

    async def delete(self, session_id: str) -> bool:
        async with self._lock:
            return self._states.pop(session_id, None) is not None


class MongoStateStore(BaseStateStore):
    """MongoDB-backed state store, one document per session."""

    def __init__(self) -> None:
        self._index_created = False

    async def _get_collection(self):
        """Get the MongoDB collection."""
        from draftstage.db.mongo import get_database
        db = await get_database()
        return db[STATE_COLLECTION]

    async def ensure_indexes(self) -> None:
        if self._index_created:
            return
        try:
            collection = await self._get_collection()
            await collection.create_index("session_id", unique=True)
            self._index_created = True
        except Exception as e:
            logger.warning(f"Failed to create MongoDB state indexes: {e}")

    async def save(self, session_id: str, state: State) -> None:
        await self.ensure_indexes()
        collection = await self._get_collection()
        await collection.replace_one(
            {"session_id": session_id},
            {
                "session_id": session_id,
                "drafts": state,
                "updated_at": datetime.now(timezone.utc),
            },
            upsert=True,
        )
        logger.debug(f"Saved stage state of session {session_id}")

    async def load(self, session_id: str) -> Optional[State]:
        collection = await self._get_collection()
        doc = await collection.find_one({"session_id": session_id})
        if not doc:
            return None
        return doc.get("drafts", {})

    async def delete(self, session_id: str) -> bool:
        collection = await self._get_collection()
        result = await collection.delete_one({"session_id": session_id})
        return result.deleted_count > 0
