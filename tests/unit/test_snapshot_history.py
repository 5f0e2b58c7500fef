"""Unit tests for SnapshotHistory and snapshot stores.

Tests cover:
- Capture, list (newest first) and clear
- Deep-copy isolation between collection, history and restored copies
- Wholesale restore of text and image drafts
- Images captured mid-generation restore as failed and can be retried
- A listing during a capture waits for the capture to land
- Bounded history eviction
- MongoDB store with mock backend (persistence across instances)
"""

import asyncio

import pytest
import pytest_asyncio

from draftstage.errors import ValidationError
from draftstage.models import DraftKind, DraftStatus, ImageDraft, JobStatus, TextDraft, VideoDraft
from draftstage.services.draft_collection import INTERRUPTED_MESSAGE, DraftCollection
from draftstage.services.generation_coordinator import GenerationCoordinator
from draftstage.services.snapshot_history import (
    InMemorySnapshotStore,
    MongoSnapshotStore,
    SnapshotHistory,
)


class SlowSnapshotStore(InMemorySnapshotStore):
    """Snapshot store whose save blocks until released."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def save(self, snapshot) -> None:
        self.entered.set()
        await self.release.wait()
        await super().save(snapshot)


@pytest.fixture
def stage(collection: DraftCollection) -> DraftCollection:
    collection.add(DraftKind.text, [TextDraft(content="Intro"), TextDraft(content="Outro")])
    collection.add(DraftKind.image, [ImageDraft(prompt="A fox", url="/uploads/images/a.png")])
    collection.add(DraftKind.video, [VideoDraft(prompt="Waves")])
    return collection


@pytest.fixture
def history() -> SnapshotHistory:
    return SnapshotHistory(InMemorySnapshotStore(), session_id="s1")


@pytest_asyncio.fixture
async def mongo_store(mock_db):
    """MongoDB snapshot store with mock backend."""
    yield MongoSnapshotStore()


class TestCaptureListClear:
    """Capture, listing and clearing."""

    @pytest.mark.asyncio
    async def test_capture_list_clear(self, history, stage):
        snapshot = await history.capture(stage)

        assert len(snapshot.text_drafts) == 2
        assert len(snapshot.image_drafts) == 1
        assert snapshot.session_id == "s1"
        assert [s.id for s in await history.list()] == [snapshot.id]

        await history.clear_all(confirm=True)
        assert await history.list() == []

    @pytest.mark.asyncio
    async def test_videos_not_captured(self, history, stage):
        snapshot = await history.capture(stage)
        assert not hasattr(snapshot, "video_drafts")

    @pytest.mark.asyncio
    async def test_fresh_ids_newest_first(self, history, stage):
        first = await history.capture(stage)
        await asyncio.sleep(0.002)
        second = await history.capture(stage)

        assert first.id != second.id
        assert [s.id for s in await history.list()] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_clear_requires_confirmation(self, history, stage):
        await history.capture(stage)
        with pytest.raises(ValidationError):
            await history.clear_all()
        assert len(await history.list()) == 1

    @pytest.mark.asyncio
    async def test_summaries(self, history, stage):
        await history.capture(stage)
        summary = (await history.summaries())[0]
        assert summary.text_count == 2
        assert summary.image_count == 1
        assert summary.thumbnails == ["/uploads/images/a.png"]

    @pytest.mark.asyncio
    async def test_concurrent_captures_all_recorded(self, history, stage):
        await asyncio.gather(*(history.capture(stage) for _ in range(5)))
        assert len(await history.list()) == 5

    @pytest.mark.asyncio
    async def test_list_waits_for_capture_in_progress(self, stage):
        store = SlowSnapshotStore()
        history = SnapshotHistory(store, session_id="s1")

        capture = asyncio.create_task(history.capture(stage))
        await store.entered.wait()
        listing = asyncio.create_task(history.list())
        await asyncio.sleep(0.01)
        assert not listing.done()

        store.release.set()
        snapshot = await capture
        snapshots = await listing

        assert [s.id for s in snapshots] == [snapshot.id]
        assert len(snapshots[0].text_drafts) == 2
        assert len(snapshots[0].image_drafts) == 1


class TestIsolation:
    """Snapshots never share state with the stage."""

    @pytest.mark.asyncio
    async def test_later_mutation_does_not_leak(self, history, stage):
        snapshot = await history.capture(stage)
        stage.update(DraftKind.text, 1, content="Changed")

        stored = await history.restore_by_id(snapshot.id)
        assert stored.text_drafts[0].content == "Intro"

    @pytest.mark.asyncio
    async def test_restored_copy_is_independent(self, history, stage):
        snapshot = await history.capture(stage)
        restored = await history.restore_by_id(snapshot.id)
        restored.text_drafts[0].content = "Mutated"

        again = await history.restore_by_id(snapshot.id)
        assert again.text_drafts[0].content == "Intro"

    @pytest.mark.asyncio
    async def test_unknown_id(self, history):
        assert await history.restore_by_id("missing") is None


class TestRestore:
    """Wholesale restore into a collection."""

    @pytest.mark.asyncio
    async def test_restore_replaces_text_and_images(self, history, stage):
        stage.select(DraftKind.image, 1)
        snapshot = await history.capture(stage)

        stage.remove(DraftKind.text, 2)
        stage.add(DraftKind.image, [ImageDraft(prompt="A hare")])
        stage.select(DraftKind.image, 2)

        restored = await history.restore_into(snapshot.id, stage)

        assert restored.id == snapshot.id
        assert [d.id for d in stage.list(DraftKind.text)] == [1, 2]
        assert [d.id for d in stage.list(DraftKind.image)] == [1]
        assert stage.selected(DraftKind.image).id == 1
        assert stage.count(DraftKind.video) == 1

    @pytest.mark.asyncio
    async def test_restore_unknown_leaves_collection(self, history, stage):
        before = stage.read_model()
        assert await history.restore_into("missing", stage) is None
        assert stage.read_model() == before

    @pytest.mark.asyncio
    async def test_restore_keeps_history(self, history, stage):
        snapshot = await history.capture(stage)
        await history.restore_into(snapshot.id, stage)
        assert len(await history.list()) == 1

    @pytest.mark.asyncio
    async def test_image_captured_while_generating_restores_as_error(self, history, stage, gateway):
        stage.update(DraftKind.image, 1, status=DraftStatus.generating)
        snapshot = await history.capture(stage)
        stage.update(DraftKind.image, 1, status=DraftStatus.completed, url="/uploads/images/b.png")

        await history.restore_into(snapshot.id, stage)

        draft = stage.get(DraftKind.image, 1)
        assert draft.status == DraftStatus.error
        assert draft.error == INTERRUPTED_MESSAGE
        stored = await history.restore_by_id(snapshot.id)
        assert stored.image_drafts[0].status == DraftStatus.generating

        async with GenerationCoordinator(stage, gateway) as coordinator:
            job = await coordinator.generate(DraftKind.image, 1)
        assert job.status == JobStatus.completed
        assert stage.get(DraftKind.image, 1).status == DraftStatus.completed


class TestBoundedHistory:
    """Oldest snapshots are evicted beyond the limit."""

    @pytest.mark.asyncio
    async def test_eviction(self, stage):
        store = InMemorySnapshotStore()
        history = SnapshotHistory(store, session_id="s1", limit=2)

        first = await history.capture(stage)
        second = await history.capture(stage)
        third = await history.capture(stage)

        ids = [s.id for s in await history.list()]
        assert ids == [third.id, second.id]
        assert first.id not in [s.id for s in await store.load("s1")]

    def test_limit_from_env(self, monkeypatch):
        monkeypatch.setenv("STAGE_SNAPSHOT_LIMIT", "7")
        assert SnapshotHistory().limit == 7

    def test_invalid_limit(self):
        with pytest.raises(ValidationError):
            SnapshotHistory(limit=0)


class TestMongoSnapshotStore:
    """MongoDB-backed snapshot store."""

    @pytest.mark.asyncio
    async def test_history_survives_new_instance(self, mongo_store, stage):
        history = SnapshotHistory(mongo_store, session_id="s1")
        snapshot = await history.capture(stage)

        reloaded = SnapshotHistory(MongoSnapshotStore(), session_id="s1")
        snapshots = await reloaded.list()

        assert [s.id for s in snapshots] == [snapshot.id]
        assert snapshots[0].text_drafts[0].content == "Intro"
        assert snapshots[0].image_drafts[0].status == DraftStatus.pending

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self, mongo_store, stage):
        await SnapshotHistory(mongo_store, session_id="s1").capture(stage)
        assert await SnapshotHistory(mongo_store, session_id="s2").list() == []

    @pytest.mark.asyncio
    async def test_clear_only_own_session(self, mongo_store, stage):
        await SnapshotHistory(mongo_store, session_id="s1").capture(stage)
        await SnapshotHistory(mongo_store, session_id="s2").capture(stage)

        removed = await SnapshotHistory(mongo_store, session_id="s1").clear_all(confirm=True)

        assert removed == 1
        assert len(await mongo_store.load("s2")) == 1

    @pytest.mark.asyncio
    async def test_eviction_deletes_documents(self, mongo_store, mock_db, stage):
        history = SnapshotHistory(mongo_store, session_id="s1", limit=1)
        await history.capture(stage)
        latest = await history.capture(stage)

        docs = await mock_db["stage_snapshots"].find({}).to_list(length=None)
        assert [d["snapshot_id"] for d in docs] == [latest.id]
