"""
Evaluator review session: the decide-then-notify flow.

A decision is saved first, then the developer is notified through the
server. The two are independent: a failed notification never undoes the
decision and can be resent without deciding again.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Union

import structlog

from devreview_shared.schemas.common import Decision, SubmissionStatus
from devreview_shared.schemas.submissions import SubmissionEvent, SubmissionFilter, SubmissionRead

from . import view as views
from .api import ReviewApiClient
from .errors import AlreadyDecided, ReviewClientError, ValidationFailed
from .feed import SubmissionFeed

log = structlog.get_logger()


class DecisionOutcome(str, Enum):
    NOTIFIED = "notified"
    NOTIFY_FAILED = "notify_failed"


@dataclass(frozen=True)
class PendingNotification:
    """What a resend needs: the saved decision, not a new one."""

    submission_id: uuid.UUID
    decision: Decision
    feedback: str


@dataclass(frozen=True)
class DecisionResult:
    outcome: DecisionOutcome
    submission: SubmissionRead
    notification: PendingNotification
    error: Optional[str] = None


class ReviewSession:
    """Holds the evaluator's view and mutates it only through the pure reducers."""

    def __init__(
        self,
        api: ReviewApiClient,
        *,
        status: Optional[SubmissionStatus] = None,
        search: Optional[str] = None,
        on_change: Callable[[views.SubmissionView], None] | None = None,
    ):
        self._api = api
        self._view = views.SubmissionView()
        self._on_change = on_change
        self.filter = SubmissionFilter(status=status, search=search)

    @property
    def view(self) -> views.SubmissionView:
        return self._view

    def _set_view(self, new_view: views.SubmissionView) -> None:
        self._view = new_view
        if self._on_change:
            self._on_change(new_view)

    def is_updating(self, submission_id: Union[uuid.UUID, str]) -> bool:
        entry = self._view.get(submission_id)
        return bool(entry and entry.is_updating)

    # --- sync ---

    async def refresh(self) -> views.SubmissionView:
        """Full re-fetch with the current filters."""
        submissions = await self._api.list_submissions(status=self.filter.status, search=self.filter.search)
        self._set_view(views.replace_all(self._view, submissions))
        return self._view

    async def handle_event(self, event: SubmissionEvent) -> None:
        """Apply a pushed change, keeping the view within the current filter."""
        self._set_view(views.apply_filter(views.apply_event(self._view, event), self.filter))

    def attach(self, feed: SubmissionFeed) -> Callable[[], None]:
        """Follow a feed: resync on every connect, apply every event."""
        feed.set_resync(self.refresh)
        return feed.subscribe(None, self.handle_event)

    # --- decide / notify ---

    async def decide(
        self,
        submission_id: Union[uuid.UUID, str],
        decision: Union[Decision, str],
        feedback: str,
    ) -> DecisionResult:
        """Save a decision, then notify the developer.

        Raises the decision error if saving fails (AlreadyDecided also
        triggers a re-fetch). Returns NOTIFY_FAILED, with what a resend
        needs, when only the notification failed.
        """
        try:
            decision = Decision(decision)
        except ValueError:
            raise ValidationFailed(f"Invalid decision '{decision}'. Allowed: accepted, rejected")
        text = (feedback or "").strip()
        if not text:
            raise ValidationFailed("Please provide feedback before making a decision")

        self._set_view(views.mark_updating(self._view, submission_id))
        try:
            try:
                submission = await self._api.decide(submission_id, decision, text)
            except AlreadyDecided:
                log.info("session.already_decided", submission_id=str(submission_id))
                await self.refresh()
                raise

            self._set_view(views.apply_filter(views.upsert(self._view, submission), self.filter))
            pending = PendingNotification(submission.id, decision, text)
            return await self._notify(submission, pending)
        finally:
            self._set_view(views.clear_updating(self._view, submission_id))

    async def resend_notification(self, pending: PendingNotification) -> DecisionResult:
        """Retry only the notification of an already-saved decision."""
        self._set_view(views.mark_updating(self._view, pending.submission_id))
        try:
            entry = self._view.get(pending.submission_id)
            submission = entry.submission if entry else await self._api.get_submission(pending.submission_id)
            return await self._notify(submission, pending)
        finally:
            self._set_view(views.clear_updating(self._view, pending.submission_id))

    async def _notify(self, submission: SubmissionRead, pending: PendingNotification) -> DecisionResult:
        try:
            await self._api.notify(pending.submission_id, pending.decision, pending.feedback)
        except ReviewClientError as exc:
            log.warning(
                "session.notify_failed",
                submission_id=str(pending.submission_id),
                code=exc.code,
                error=exc.message,
            )
            return DecisionResult(DecisionOutcome.NOTIFY_FAILED, submission, pending, error=exc.message)

        log.info("session.notified", submission_id=str(pending.submission_id), decision=pending.decision.value)
        return DecisionResult(DecisionOutcome.NOTIFIED, submission, pending)
