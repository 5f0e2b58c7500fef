"""Generation coordinator: drives drafts through their status machine.

Flow per draft:
1. generate() validates synchronously (draft exists, prompt, model, no job
   in flight) and moves the draft to ``generating``.
2. The provider is called. Images resolve directly to a url; videos return
   a job id which a polling task checks every ``poll_interval`` seconds.
3. The draft ends ``completed`` (with url) or ``error`` (with message).

Features:
- One job per draft: entering ``generating`` is the guard
- Caller-held cancellation tokens; late provider responses are discarded
- Model fallback: "model unavailable" switches the kind to its default model
- Polling tasks are bound to the coordinator (``async with`` / ``aclose``)
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel, ConfigDict

from draftstage.errors import AbortedError, ProviderError, ValidationError, is_model_unavailable
from draftstage.models import (
    DEFAULT_MODELS,
    GENERATABLE_KINDS,
    CancellationToken,
    DraftKind,
    DraftStatus,
    GeneratableDraft,
    GenerationEvent,
    GenerationJob,
    ImageDraft,
    JobStatus,
    PollStatus,
    VideoDraft,
    is_known_model,
)
from draftstage.providers.base import ProviderGateway
from draftstage.services.asset_store import BaseAssetStore, local_asset_url, persist_image
from draftstage.services.draft_collection import DraftCollection
from draftstage.services.image_utils import sniff_media_type
from draftstage.services.remote_fetch import Fetcher

logger = logging.getLogger(__name__)

# Default seconds between two status checks of a video job
DEFAULT_POLL_INTERVAL_SECONDS = 3.0


class RegenerationResult(BaseModel):
    """Per-draft outcome of a batch regenerate."""
    model_config = ConfigDict(extra="forbid")

    draft_id: int
    status: Optional[JobStatus] = None
    error: Optional[str] = None


class GenerationCoordinator:
    """Runs provider jobs against one DraftCollection.

    Usage:
        async with GenerationCoordinator(collection, gateway) as coordinator:
            job = await coordinator.generate(DraftKind.image, 1)
            await coordinator.wait(DraftKind.video, 2)
    """

    def __init__(
        self,
        collection: DraftCollection,
        gateway: ProviderGateway,
        asset_store: BaseAssetStore | None = None,
        fetcher: Fetcher | None = None,
        session_id: str | None = None,
        poll_interval: float | None = None,
        on_event: Callable[[GenerationEvent], None] | None = None,
    ):
        """Initialize the coordinator.

        Args:
            collection: The session's drafts; every mutation goes through it.
            gateway: Provider capability (submit/poll/cancel).
            asset_store: When set (with ``fetcher``), generated images are
                persisted locally and drafts point at the local copy.
            fetcher: Downloads provider outputs for persistence.
            session_id: Session owning the collection; recorded on
                persisted assets so lookups never cross sessions.
            poll_interval: Seconds between polls. Defaults to
                STAGE_POLL_INTERVAL_SECONDS env var, else 3.
            on_event: Called with every terminal-state notification.
        """
        self._collection = collection
        self._gateway = gateway
        self._asset_store = asset_store
        self._fetcher = fetcher
        self._session_id = session_id
        self._poll_interval = (
            poll_interval
            if poll_interval is not None
            else float(os.environ.get("STAGE_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS))
        )

        self._jobs: dict[tuple[DraftKind, int], GenerationJob] = {}
        self._cancel_hooks: dict[tuple[DraftKind, int], Callable[[], None]] = {}
        self._selected_models: dict[DraftKind, str] = dict(DEFAULT_MODELS)
        self._unavailable_models: set[str] = set()
        self._events: list[GenerationEvent] = []
        self._on_event = on_event
        self._background: set[asyncio.Task] = set()
        self._closed = False

    async def __aenter__(self) -> "GenerationCoordinator":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    def selected_model(self, kind: DraftKind | str) -> str:
        return self._selected_models[DraftKind(kind)]

    def select_model(self, kind: DraftKind | str, model_id: str) -> None:
        """Choose the session model for a kind.

        Raises:
            ValidationError: Unknown kind or model not in the registry.
        """
        kind = DraftKind(kind)
        if kind not in GENERATABLE_KINDS or not is_known_model(kind, model_id):
            raise ValidationError(f"Invalid {kind.value} model: {model_id}")
        self._selected_models[kind] = model_id
        self._unavailable_models.discard(model_id)
        logger.info(f"Selected {kind.value} model {model_id}")

    def resolve_model(self, kind: DraftKind, draft: GeneratableDraft) -> str:
        """Model a draft would be submitted with right now."""
        model_id = draft.model_id or self._selected_models[kind]
        if model_id in self._unavailable_models:
            model_id = DEFAULT_MODELS[kind]
        return model_id

    @property
    def unavailable_models(self) -> frozenset[str]:
        return frozenset(self._unavailable_models)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    @property
    def events(self) -> list[GenerationEvent]:
        """Terminal-state notifications in the order they happened."""
        return list(self._events)

    def drain_events(self) -> list[GenerationEvent]:
        events, self._events = self._events, []
        return events

    def in_flight(self) -> list[GenerationJob]:
        return list(self._jobs.values())

    def get_job(self, kind: DraftKind | str, draft_id: int) -> Optional[GenerationJob]:
        return self._jobs.get((DraftKind(kind), draft_id))

    def _validate(self, kind: DraftKind, draft_id: int) -> tuple[GeneratableDraft, str]:
        """Check every precondition before any network interaction."""
        if self._closed:
            raise ValidationError("Generation coordinator is closed")
        if kind not in GENERATABLE_KINDS:
            raise ValidationError(f"{kind.value} drafts have no generation phase")

        draft = self._collection.get(kind, draft_id)
        if draft is None:
            raise ValidationError(f"{kind.value} draft {draft_id} not found")
        if not draft.prompt.strip():
            raise ValidationError(f"{kind.value} draft {draft_id} has an empty prompt")
        if (kind, draft_id) in self._jobs or draft.status == DraftStatus.generating:
            raise ValidationError(f"{kind.value} draft {draft_id} is already generating")

        model_id = self.resolve_model(kind, draft)
        if not is_known_model(kind, model_id):
            raise ValidationError(f"Invalid {kind.value} model: {model_id}")
        return draft, model_id

    async def generate(
        self,
        kind: DraftKind | str,
        draft_id: int,
        token: CancellationToken | None = None,
        extra: dict[str, Any] | None = None,
    ) -> GenerationJob:
        """Start generating one draft.

        Returns once the provider answered the submit call: image jobs are
        terminal by then, video jobs keep polling in the background.

        Raises:
            ValidationError: A precondition failed; the draft is untouched.
        """
        kind = DraftKind(kind)
        draft, model_id = self._validate(kind, draft_id)

        job = GenerationJob(
            draft_id=draft_id,
            kind=kind,
            model_id=model_id,
            token=token or CancellationToken(),
        )
        self._collection.update(kind, draft_id, status=DraftStatus.generating, error=None)
        self._register(job)
        if job.is_terminal():
            return job

        log_extra = {"draft_id": draft_id, "kind": kind.value, "model": model_id}
        logger.info(f"Generating {kind.value} draft {draft_id}", extra=log_extra)

        try:
            result = await self._gateway.submit(
                draft.prompt, model_id, kind, self._submit_extra(draft, extra)
            )
        except ProviderError as e:
            if not job.is_terminal():
                self._fail(job, e.message, model_unavailable=is_model_unavailable(e))
            return job
        except Exception as e:
            logger.exception(f"Unexpected provider failure for {kind.value} draft {draft_id}", extra=log_extra)
            if not job.is_terminal():
                self._fail(job, f"Unexpected error: {e}")
            return job

        if job.is_terminal():
            # Aborted while the provider was working
            logger.info(f"Discarding late response for {kind.value} draft {draft_id}", extra=log_extra)
            return job

        if not result.success:
            message = result.error or "Generation failed"
            self._fail(job, message, model_unavailable=is_model_unavailable(message))
        elif result.output_url:
            url, fields = await self._persist_output(job, draft, result.output_url)
            if not job.is_terminal():
                self._complete(job, url, **fields)
        elif result.job_id:
            self._start_polling(job, result.job_id)
        else:
            self._fail(job, "Provider returned neither an output nor a job id")
        return job

    async def regenerate(
        self,
        kind: DraftKind | str,
        draft_ids: Iterable[int],
        token: CancellationToken | None = None,
    ) -> list[RegenerationResult]:
        """Generate several drafts one after another.

        A failing draft (validation or provider) never stops the batch; a
        cancelled ``token`` skips the drafts not yet started.
        """
        kind = DraftKind(kind)
        results = []
        for draft_id in draft_ids:
            try:
                if token is not None:
                    token.raise_if_cancelled()
                job = await self.generate(kind, draft_id, token=token)
            except AbortedError:
                results.append(RegenerationResult(draft_id=draft_id, status=JobStatus.aborted))
                continue
            except ValidationError as e:
                logger.warning(f"Skipping {kind.value} draft {draft_id}: {e.message}")
                results.append(RegenerationResult(draft_id=draft_id, error=e.message))
                continue
            results.append(RegenerationResult(draft_id=draft_id, status=job.status, error=job.error))
        return results

    def cancel(self, kind: DraftKind | str, draft_id: int) -> bool:
        """Abort the job in flight for a draft. False if there is none."""
        job = self._jobs.get((DraftKind(kind), draft_id))
        if job is None:
            return False
        job.token.cancel()
        return True

    async def wait(self, kind: DraftKind | str, draft_id: int) -> Optional[GeneratableDraft]:
        """Wait for a draft's polling to finish; return the draft."""
        job = self._jobs.get((DraftKind(kind), draft_id))
        if job is not None and job.poll_task is not None:
            await asyncio.gather(job.poll_task, return_exceptions=True)
        return self._collection.get(kind, draft_id)

    def resume(self, kind: DraftKind | str = DraftKind.video) -> list[int]:
        """Re-attach polling for drafts left ``generating`` with a job id.

        Used after the collection was loaded from persisted state. Drafts
        left ``generating`` with nothing to poll (images, videos without a
        job id) are moved to ``error`` so they can be retried.
        """
        kind = DraftKind(kind)
        resumed = []
        for draft in self._collection.list(kind):
            job_id = getattr(draft, "job_id", None)
            if draft.status != DraftStatus.generating or not job_id:
                continue
            if (kind, draft.id) in self._jobs:
                continue
            job = GenerationJob(
                draft_id=draft.id,
                kind=kind,
                model_id=self.resolve_model(kind, draft),
            )
            self._register(job)
            self._start_polling(job, job_id)
            resumed.append(draft.id)
        active = [draft_id for (job_kind, draft_id) in self._jobs if job_kind == kind]
        self._collection.interrupt_generating(kind, keep=active)
        if resumed:
            logger.info(f"Resumed polling for {kind.value} drafts {resumed}")
        return resumed

    async def aclose(self) -> None:
        """Stop every polling task. Drafts are left as they are."""
        self._closed = True
        tasks = []
        for job in list(self._jobs.values()):
            job.token.remove_callback(self._cancel_hooks.pop(job.key, None))
            if not job.is_terminal():
                job.finish(JobStatus.aborted)
            if job.poll_task is not None and not job.poll_task.done():
                job.poll_task.cancel()
                tasks.append(job.poll_task)
        self._jobs.clear()
        tasks.extend(self._background)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Released {len(tasks)} background tasks")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _submit_extra(self, draft: GeneratableDraft, extra: dict[str, Any] | None) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if isinstance(draft, ImageDraft):
            options["width"] = draft.width
            options["height"] = draft.height
        elif isinstance(draft, VideoDraft):
            options["duration"] = draft.duration
        options.update(extra or {})
        return options

    def _start_polling(self, job: GenerationJob, provider_job_id: str) -> None:
        job.provider_job_id = provider_job_id
        job.status = JobStatus.polling
        if job.kind == DraftKind.video:
            self._collection.update(job.kind, job.draft_id, job_id=provider_job_id)
        job.poll_task = asyncio.create_task(self._poll_loop(job))

    async def _poll_loop(self, job: GenerationJob) -> None:
        log_extra = {"draft_id": job.draft_id, "kind": job.kind.value, "job_id": job.provider_job_id}
        try:
            while not job.is_terminal():
                await asyncio.sleep(self._poll_interval)
                if job.is_terminal():
                    return

                try:
                    result = await self._gateway.poll(job.provider_job_id)
                except ProviderError as e:
                    if not job.is_terminal():
                        self._fail(job, f"Status check failed: {e.message}")
                    return
                except Exception as e:
                    logger.exception("Unexpected error while polling", extra=log_extra)
                    if not job.is_terminal():
                        self._fail(job, f"Status check failed: {e}")
                    return

                if job.is_terminal():
                    return
                if result.status == PollStatus.completed:
                    if result.output_url:
                        self._complete(job, result.output_url)
                    else:
                        self._fail(job, "Provider reported completion without an output url")
                elif result.status == PollStatus.failed:
                    message = result.error or f"{job.kind.value.capitalize()} generation failed"
                    self._fail(job, message, model_unavailable=is_model_unavailable(result.error))
                else:
                    logger.debug("Job still processing", extra=log_extra)
        except asyncio.CancelledError:
            logger.debug("Polling cancelled", extra=log_extra)
            raise

    async def _persist_output(
        self, job: GenerationJob, draft: GeneratableDraft, url: str
    ) -> tuple[str, dict[str, Any]]:
        """Keep a local copy of a generated image; fall back to the provider url."""
        meta = draft.meta.model_copy(update={"provider": self._gateway.name}) if isinstance(draft, ImageDraft) else None
        fields: dict[str, Any] = {"meta": meta} if meta is not None else {}
        if self._asset_store is None or self._fetcher is None or job.kind != DraftKind.image:
            return url, fields

        try:
            content = await self._fetcher(url)
            asset_id, width, height = await persist_image(
                self._asset_store,
                content,
                sniff_media_type(content),
                self._asset_metadata(job, url),
            )
        except Exception as e:
            logger.warning(
                f"Could not persist image for draft {job.draft_id}, keeping provider url: {e}",
                extra={"draft_id": job.draft_id, "kind": job.kind.value},
            )
            return url, fields

        fields.update(
            width=width,
            height=height,
            meta=meta.model_copy(update={"asset_id": asset_id}),
        )
        return local_asset_url(asset_id), fields

    def _asset_metadata(self, job: GenerationJob, url: str) -> dict[str, Any]:
        metadata = {"draft_id": job.draft_id, "source_url": url, "model_id": job.model_id}
        if self._session_id is not None:
            metadata["session_id"] = self._session_id
        return metadata

    def _apply(self, job: GenerationJob, **fields: Any) -> bool:
        """Write a terminal result, unless the draft moved on meanwhile."""
        current = self._collection.get(job.kind, job.draft_id)
        if current is None or current.status != DraftStatus.generating:
            logger.info(
                f"Dropping stale result for {job.kind.value} draft {job.draft_id}",
                extra={"draft_id": job.draft_id, "kind": job.kind.value},
            )
            return False
        self._collection.update(job.kind, job.draft_id, **fields)
        return True

    def _register(self, job: GenerationJob) -> None:
        hook = self._cancel_hooks[job.key] = lambda: self._abort(job)
        self._jobs[job.key] = job
        job.token.on_cancel(hook)

    def _release(self, job: GenerationJob) -> None:
        """Forget a finished job and detach it from its token."""
        if self._jobs.get(job.key) is job:
            del self._jobs[job.key]
            job.token.remove_callback(self._cancel_hooks.pop(job.key))

    def _complete(self, job: GenerationJob, url: str, **fields: Any) -> None:
        job.finish(JobStatus.completed, output_url=url)
        self._release(job)
        self._apply(
            job,
            status=DraftStatus.completed,
            url=url,
            error=None,
            model_id=job.model_id,
            **fields,
        )
        self._emit(
            GenerationEvent(
                draft_id=job.draft_id,
                kind=job.kind,
                outcome=JobStatus.completed,
                model_id=job.model_id,
            )
        )
        logger.info(
            f"Completed {job.kind.value} draft {job.draft_id}",
            extra={"draft_id": job.draft_id, "kind": job.kind.value, "model": job.model_id},
        )

    def _fail(self, job: GenerationJob, message: str, model_unavailable: bool = False) -> None:
        if model_unavailable:
            self._fall_back(job.kind, job.model_id)
        job.finish(JobStatus.failed, error=message)
        self._release(job)
        self._apply(job, status=DraftStatus.error, error=message)
        self._emit(
            GenerationEvent(
                draft_id=job.draft_id,
                kind=job.kind,
                outcome=JobStatus.failed,
                message=message,
                model_id=job.model_id,
            )
        )
        logger.warning(
            f"Generation failed for {job.kind.value} draft {job.draft_id}: {message}",
            extra={"draft_id": job.draft_id, "kind": job.kind.value, "model": job.model_id},
        )

    def _fall_back(self, kind: DraftKind, model_id: str) -> None:
        default = DEFAULT_MODELS[kind]
        if model_id != default:
            self._unavailable_models.add(model_id)
        self._selected_models[kind] = default
        logger.warning(f"Model {model_id} unavailable, using {default} for {kind.value} drafts")

    def _abort(self, job: GenerationJob) -> None:
        """Token callback: mark aborted and stop listening for the provider."""
        if job.is_terminal():
            return
        job.finish(JobStatus.aborted)
        self._release(job)

        task = job.poll_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        if job.provider_job_id:
            self._spawn(self._gateway.cancel(job.provider_job_id))

        self._apply(job, status=DraftStatus.error, error=None)
        self._emit(
            GenerationEvent(draft_id=job.draft_id, kind=job.kind, outcome=JobStatus.aborted)
        )
        logger.info(
            f"Aborted {job.kind.value} draft {job.draft_id}",
            extra={"draft_id": job.draft_id, "kind": job.kind.value},
        )

    def _emit(self, event: GenerationEvent) -> None:
        self._events.append(event)
        if self._on_event is not None:
            self._on_event(event)

    def _spawn(self, coro: Any) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        task.add_done_callback(_log_background_failure)


def _log_background_failure(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.warning(f"Background provider call failed: {task.exception()}")
