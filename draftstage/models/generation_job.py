"""Generation job model for async draft generation.

A job binds one draft (kind + id) to a provider request from submission to
terminal status. Jobs are transient: they live in the coordinator's registry
only while the draft is generating and are never persisted.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from draftstage.errors import AbortedError

from .drafts import DraftKind


def _utcnow() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Status of a generation job."""
    submitted = "submitted"
    polling = "polling"
    completed = "completed"
    failed = "failed"
    aborted = "aborted"


class CancellationToken:
    """Caller-held cancellation flag.

    Once cancelled it stays cancelled. Callbacks registered with
    ``on_cancel`` run exactly once, immediately if already cancelled.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        """Forget a callback that no longer needs to run. Unknown ones are ignored."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    @property
    def pending_callbacks(self) -> int:
        return len(self._callbacks)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise AbortedError()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"


class GenerationJob(BaseModel):
    """In-memory state for one draft's generation.

    Tracks the provider handle, the model actually used and the polling
    task. Used by generation_coordinator.py.
    """
    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True, protected_namespaces=())

    # Identity
    draft_id: int = Field(ge=1)
    kind: DraftKind
    provider_job_id: Optional[str] = Field(default=None, description="Opaque provider handle (video)")
    model_id: str = Field(description="Model the request was submitted with")

    # Status
    status: JobStatus = Field(default=JobStatus.submitted)
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None
    output_url: Optional[str] = None
    error: Optional[str] = None

    # Control
    token: CancellationToken = Field(default_factory=CancellationToken, exclude=True)
    poll_task: Optional[asyncio.Task] = Field(default=None, exclude=True)

    @property
    def key(self) -> tuple[DraftKind, int]:
        return (self.kind, self.draft_id)

    def is_terminal(self) -> bool:
        """Check if job is in a terminal state (no more updates expected)."""
        return self.status in (
            JobStatus.completed,
            JobStatus.failed,
            JobStatus.aborted,
        )

    def finish(self, status: JobStatus, output_url: str | None = None, error: str | None = None) -> None:
        self.status = status
        self.output_url = output_url
        self.error = error
        self.completed_at = _utcnow()


class GenerationEvent(BaseModel):
    """Notification emitted when a job reaches a terminal state.

    ``outcome`` is the job status; aborted events carry no message.
    """
    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    draft_id: int
    kind: DraftKind
    outcome: JobStatus
    message: Optional[str] = None
    model_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)
