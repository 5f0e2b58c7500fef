"""In-memory draft collection for one working session.

The collection is the single shared mutable resource of the stage. Every
caller goes through the same narrow operation set (add, update, remove,
select, plus replace for snapshot restore), which keeps ids unique and
selection exclusive per kind.

All operations are synchronous. Operating on an unknown id is a no-op so
stale callers (a finished poll for a removed draft, a double click) are
tolerated.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from draftstage.errors import ValidationError
from draftstage.models import (
    CollectionView,
    DraftBase,
    DraftKind,
    DraftStatus,
    GeneratableDraft,
    check_transition,
    draft_model,
)

logger = logging.getLogger(__name__)

# Fields callers may never change through update()
IMMUTABLE_FIELDS = frozenset({"id", "kind"})

INTERRUPTED_MESSAGE = "Generation was interrupted"


class DraftCollection:
    """Ordered draft sets, one per kind.

    Usage:
        collection = DraftCollection()
        added = collection.add(DraftKind.image, [ImageDraft(prompt="A fox")])
        collection.select(DraftKind.image, added[0].id)
        collection.update(DraftKind.image, added[0].id, prompt="A red fox")
    """

    def __init__(self) -> None:
        self._drafts: dict[DraftKind, list[DraftBase]] = {kind: [] for kind in DraftKind}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self, kind: DraftKind | str) -> list[DraftBase]:
        """Return deep copies of the drafts of one kind, in insertion order."""
        return [d.model_copy(deep=True) for d in self._drafts[DraftKind(kind)]]

    def get(self, kind: DraftKind | str, draft_id: int) -> Optional[DraftBase]:
        """Return a deep copy of a draft, or None if unknown."""
        draft = self._find(DraftKind(kind), draft_id)
        return draft.model_copy(deep=True) if draft else None

    def selected(self, kind: DraftKind | str) -> Optional[DraftBase]:
        for draft in self._drafts[DraftKind(kind)]:
            if draft.is_selected:
                return draft.model_copy(deep=True)
        return None

    def max_id(self, kind: DraftKind | str) -> int:
        drafts = self._drafts[DraftKind(kind)]
        return max((d.id for d in drafts), default=0)

    def count(self, kind: DraftKind | str) -> int:
        return len(self._drafts[DraftKind(kind)])

    def read_model(self) -> CollectionView:
        """Snapshot of the whole stage for the presentation layer."""
        return CollectionView(
            text_drafts=self.list(DraftKind.text),
            image_drafts=self.list(DraftKind.image),
            video_drafts=self.list(DraftKind.video),
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, kind: DraftKind | str, drafts: Iterable[DraftBase]) -> list[DraftBase]:
        """Append drafts with freshly allocated ids (current max + 1, ...).

        Added drafts start unselected. Returns copies of the stored drafts.

        Raises:
            ValidationError: If a draft is not of the collection's kind.
        """
        kind = DraftKind(kind)
        model = draft_model(kind)
        next_id = self.max_id(kind) + 1
        added = []

        for draft in drafts:
            if not isinstance(draft, model):
                raise ValidationError(
                    f"Cannot add {type(draft).__name__} to the {kind.value} collection"
                )
            stored = draft.model_copy(update={"id": next_id, "is_selected": False}, deep=True)
            added.append(stored)
            next_id += 1

        self._drafts[kind].extend(added)
        if added:
            logger.debug(f"Added {len(added)} {kind.value} drafts (ids {added[0].id}-{added[-1].id})")
        return [d.model_copy(deep=True) for d in added]

    def select(self, kind: DraftKind | str, draft_id: int) -> bool:
        """Make ``draft_id`` the only selected draft of its kind.

        Returns:
            True if the draft exists, False (and no change) otherwise.
        """
        kind = DraftKind(kind)
        if self._find(kind, draft_id) is None:
            return False

        for draft in self._drafts[kind]:
            draft.is_selected = draft.id == draft_id
        return True

    def update(self, kind: DraftKind | str, draft_id: int, **fields: Any) -> Optional[DraftBase]:
        """Merge fields into one draft, leaving the others untouched.

        Status changes are checked against the allowed transitions.

        Returns:
            The updated draft (copy), or None if the id is unknown.

        Raises:
            ValidationError: Unknown field, invalid value, immutable field,
                or an invalid status transition.
        """
        kind = DraftKind(kind)
        index = self._index(kind, draft_id)
        if index is None:
            return None

        blocked = IMMUTABLE_FIELDS.intersection(fields)
        if blocked:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(blocked))}")

        current = self._drafts[kind][index]
        if "status" in fields and isinstance(current, GeneratableDraft):
            target = DraftStatus(fields["status"])
            if target != current.status:
                check_transition(current.status, target)

        # Selection goes through select() to stay exclusive
        fields = dict(fields)
        selection = fields.pop("is_selected", None)

        try:
            updated = type(current).model_validate({**current.model_dump(), **fields})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid update for {kind.value} draft {draft_id}: {e}") from e

        self._drafts[kind][index] = updated
        if selection:
            self.select(kind, draft_id)
        elif selection is not None:
            updated.is_selected = False
        return updated.model_copy(deep=True)

    def remove(self, kind: DraftKind | str, draft_id: int) -> bool:
        """Delete a draft. Returns False if the id was unknown."""
        kind = DraftKind(kind)
        index = self._index(kind, draft_id)
        if index is None:
            return False
        del self._drafts[kind][index]
        return True

    def duplicate(self, kind: DraftKind | str, draft_id: int) -> Optional[DraftBase]:
        """Append a copy of a draft under a new id.

        Image and video copies restart as pending without url or job.
        """
        kind = DraftKind(kind)
        source = self._find(kind, draft_id)
        if source is None:
            return None

        reset: dict[str, Any] = {}
        if isinstance(source, GeneratableDraft):
            reset = {"status": DraftStatus.pending, "url": "", "error": None}
            if kind == DraftKind.video:
                reset["job_id"] = None
        copy = source.model_copy(update=reset, deep=True)
        return self.add(kind, [copy])[0]

    def interrupt_generating(
        self,
        kind: DraftKind | str,
        keep: Iterable[int] = (),
        message: str = INTERRUPTED_MESSAGE,
    ) -> list[int]:
        """Move ``generating`` drafts without a live job to ``error``.

        Used after drafts were installed from persisted state or a snapshot,
        where no job backs the status any more. Ids in ``keep`` are left as
        they are.

        Returns:
            Ids of the drafts moved to ``error``.
        """
        kind = DraftKind(kind)
        keep = set(keep)
        interrupted = [
            d.id
            for d in self._drafts[kind]
            if isinstance(d, GeneratableDraft) and d.status == DraftStatus.generating and d.id not in keep
        ]
        for draft_id in interrupted:
            self.update(kind, draft_id, status=DraftStatus.error, error=message)
        if interrupted:
            logger.warning(f"Marked interrupted {kind.value} drafts {interrupted} as failed")
        return interrupted

    def replace(self, kind: DraftKind | str, drafts: Sequence[DraftBase]) -> None:
        """Replace one kind-collection wholesale (snapshot restore).

        Ids and selection flags are taken as given; the caller provides a
        consistent set (a captured snapshot).
        """
        kind = DraftKind(kind)
        model = draft_model(kind)
        for draft in drafts:
            if not isinstance(draft, model):
                raise ValidationError(
                    f"Cannot install {type(draft).__name__} into the {kind.value} collection"
                )
        ids = [d.id for d in drafts]
        if len(set(ids)) != len(ids):
            raise ValidationError(f"Duplicate ids in {kind.value} drafts")
        self._drafts[kind] = [d.model_copy(deep=True) for d in drafts]

    # ------------------------------------------------------------------
    # Persistence boundary
    # ------------------------------------------------------------------

    def to_state(self) -> dict[str, list[dict]]:
        """Serialize to plain records, keyed by kind."""
        return {
            kind.value: [d.model_dump(mode="json") for d in drafts]
            for kind, drafts in self._drafts.items()
        }

    @classmethod
    def from_state(cls, state: dict[str, list[dict]]) -> "DraftCollection":
        """Rebuild a collection from ``to_state`` records."""
        collection = cls()
        for kind in DraftKind:
            model = draft_model(kind)
            records = state.get(kind.value, [])
            collection.replace(kind, [model.model_validate(r) for r in records])
        return collection

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _index(self, kind: DraftKind, draft_id: int) -> Optional[int]:
        for i, draft in enumerate(self._drafts[kind]):
            if draft.id == draft_id:
                return i
        return None

    def _find(self, kind: DraftKind, draft_id: int) -> Optional[DraftBase]:
        index = self._index(kind, draft_id)
        return self._drafts[kind][index] if index is not None else None
