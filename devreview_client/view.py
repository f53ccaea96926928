"""
Local view of the submission list.

Every function here is pure: it takes a view and returns a new one. The
view is what a UI renders; ``is_updating`` exists only here, never on the
server.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional, Union

from devreview_shared.schemas.submissions import SubmissionEvent, SubmissionFilter, SubmissionRead

IdLike = Union[uuid.UUID, str]


@dataclass(frozen=True)
class ViewEntry:
    submission: SubmissionRead
    is_updating: bool = False

    @property
    def id(self) -> uuid.UUID:
        return self.submission.id


@dataclass(frozen=True)
class SubmissionView:
    entries: tuple[ViewEntry, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def submissions(self) -> list[SubmissionRead]:
        return [e.submission for e in self.entries]

    def get(self, submission_id: IdLike) -> Optional[ViewEntry]:
        key = str(submission_id)
        for entry in self.entries:
            if str(entry.id) == key:
                return entry
        return None


def replace_all(view: SubmissionView, submissions: Iterable[SubmissionRead]) -> SubmissionView:
    """Swap in a freshly fetched list (the resync after every connect)."""
    return SubmissionView(entries=tuple(ViewEntry(s) for s in submissions))


def upsert(view: SubmissionView, submission: SubmissionRead) -> SubmissionView:
    """Replace the row with the same id in place, or prepend it.

    The latest payload wins; the local ``is_updating`` flag is kept.
    """
    key = str(submission.id)
    found = False
    entries = []
    for entry in view.entries:
        if str(entry.id) == key:
            entries.append(replace(entry, submission=submission))
            found = True
        else:
            entries.append(entry)
    if not found:
        entries.insert(0, ViewEntry(submission))
    return SubmissionView(entries=tuple(entries))


def apply_event(view: SubmissionView, event: SubmissionEvent) -> SubmissionView:
    return upsert(view, SubmissionRead.model_validate(event.payload))


def apply_filter(view: SubmissionView, query: SubmissionFilter) -> SubmissionView:
    """Drop rows a re-fetch with ``query`` would not return."""
    return SubmissionView(entries=tuple(e for e in view.entries if query.matches(e.submission)))


def _set_updating(view: SubmissionView, submission_id: IdLike, value: bool) -> SubmissionView:
    key = str(submission_id)
    return SubmissionView(
        entries=tuple(
            replace(e, is_updating=value) if str(e.id) == key else e
            for e in view.entries
        )
    )


def mark_updating(view: SubmissionView, submission_id: IdLike) -> SubmissionView:
    return _set_updating(view, submission_id, True)


def clear_updating(view: SubmissionView, submission_id: IdLike) -> SubmissionView:
    return _set_updating(view, submission_id, False)
