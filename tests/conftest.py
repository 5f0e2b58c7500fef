"""Pytest fixtures for testing."""

import asyncio
import io
from collections.abc import AsyncGenerator
from typing import Any, Callable, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient
from PIL import Image

from draftstage.api.main import app
from draftstage.db import mongo
from draftstage.models import DraftKind, PollResult, PollStatus, SubmitResult
from draftstage.providers.base import ProviderGateway
from draftstage.services.asset_store import InMemoryAssetStore
from draftstage.services.draft_collection import DraftCollection
from draftstage.services.snapshot_history import InMemorySnapshotStore
from draftstage.services.state_store import InMemoryStateStore
from draftstage.services.workspace import WorkspaceRegistry, set_registry


def create_test_image(width: int = 64, height: int = 32, format: str = "PNG", color: str = "red") -> bytes:
    """Create a test image in memory."""
    img = Image.new("RGB", (width, height), color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=format)
    return buffer.getvalue()


class FakeGateway(ProviderGateway):
    """Scriptable provider.

    - ``submit_result``: SubmitResult returned by submit (or a callable
      ``(prompt, model_id, kind) -> SubmitResult``)
    - ``submit_error``: raised by submit instead
    - ``submit_gate``: when set, submit waits for it (keeps a job in flight)
    - ``poll_results``: consumed one per poll, then "processing" forever
    """

    def __init__(self) -> None:
        self.submit_result: SubmitResult | Callable[..., SubmitResult] = SubmitResult(
            success=True, output_url="https://cdn.example.com/generated.png"
        )
        self.submit_error: Optional[Exception] = None
        self.submit_gate: Optional[asyncio.Event] = None
        self.poll_results: list[PollResult] = []
        self.submitted: list[dict[str, Any]] = []
        self.polled: list[str] = []
        self.cancelled: list[str] = []

    @property
    def name(self) -> str:
        return "fake"

    async def submit(self, prompt, model_id, kind, extra=None) -> SubmitResult:
        self.submitted.append({"prompt": prompt, "model_id": model_id, "kind": DraftKind(kind), "extra": extra})
        if self.submit_gate is not None:
            await self.submit_gate.wait()
        if self.submit_error is not None:
            raise self.submit_error
        if callable(self.submit_result):
            return self.submit_result(prompt, model_id, kind)
        return self.submit_result

    async def poll(self, job_id: str) -> PollResult:
        self.polled.append(job_id)
        if self.poll_results:
            return self.poll_results.pop(0)
        return PollResult(status=PollStatus.processing)

    async def cancel(self, job_id: str) -> bool:
        self.cancelled.append(job_id)
        return True


class FakeFetcher:
    """Fetcher returning canned bytes per url; unknown urls raise ValueError."""

    def __init__(self, responses: dict[str, bytes] | None = None) -> None:
        self.responses = dict(responses or {})
        self.requested: list[str] = []

    async def __call__(self, url: str) -> bytes:
        self.requested.append(url)
        if url not in self.responses:
            raise ValueError(f"Not reachable: {url}")
        return self.responses[url]


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def collection() -> DraftCollection:
    return DraftCollection()


@pytest.fixture
def png_bytes() -> bytes:
    return create_test_image()


@pytest_asyncio.fixture
async def mock_db() -> AsyncGenerator[Any, None]:
    """Provide a mock MongoDB database for testing."""
    mock_client = AsyncMongoMockClient()
    mock_database = mock_client[mongo.DATABASE_NAME]

    # Replace the real client with mock
    mongo.set_client(mock_client)

    yield mock_database

    # Cleanup
    mongo.set_client(None)


@pytest_asyncio.fixture
async def registry(gateway: FakeGateway, fetcher: FakeFetcher) -> AsyncGenerator[WorkspaceRegistry, None]:
    """In-memory registry wired to the fake provider."""
    registry = WorkspaceRegistry(
        gateway=gateway,
        asset_store=InMemoryAssetStore(),
        snapshot_store=InMemorySnapshotStore(),
        state_store=InMemoryStateStore(),
        fetcher=fetcher,
        poll_interval=0.01,
    )
    set_registry(registry)

    yield registry

    await registry.close_all()
    set_registry(None)


@pytest_asyncio.fixture
async def client(registry: WorkspaceRegistry) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """Factory for in-memory test images."""
    return create_test_image
