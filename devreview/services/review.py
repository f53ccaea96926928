"""
Submission review service: the submission lifecycle and its decision rules.

Handles:
- One-shot submission with artifact upload (picture recompressed first)
- pending -> accepted | pending -> rejected, feedback required
- Concurrent evaluators: the store's conditional write picks exactly one winner
- Change events published after every committed mutation
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Union

import structlog

from devreview.core.config import Settings, get_settings
from devreview.core.errors import (
    AlreadyDecided,
    ArtifactUploadFailed,
    DuplicateSubmission,
    NotFound,
    StoreWriteFailed,
    UpstreamError,
    ValidationError,
)
from devreview.core.events import (
    SUBMISSION_CREATED,
    SUBMISSION_UPDATED,
    publish_submission_event,
)
from devreview.core.imaging import recompress_picture
from devreview.core.storage import ObjectStorage, artifact_path
from devreview.models.submission import Submission
from devreview.services.store import SubmissionStore
from devreview_shared.schemas.common import Decision, SubmissionStatus
from devreview_shared.schemas.submissions import SubmissionProfile

log = structlog.get_logger()

Publisher = Callable[[str, Submission], Awaitable[object]]


@dataclass
class Artifact:
    """An uploaded file as received from the client."""

    filename: str
    data: bytes
    content_type: str = "application/octet-stream"

    @property
    def empty(self) -> bool:
        return not self.data


class ReviewService:
    def __init__(
        self,
        store: SubmissionStore,
        storage: Optional[ObjectStorage] = None,
        *,
        settings: Optional[Settings] = None,
        publish: Publisher = publish_submission_event,
    ):
        self._store = store
        self._storage = storage
        self._settings = settings or get_settings()
        self._publish = publish

    # -----------------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------------

    async def get(self, submission_id: uuid.UUID) -> Submission:
        submission = await self._store.get(submission_id)
        if submission is None:
            raise NotFound(submission_id=str(submission_id))
        return submission

    async def get_for_user(self, user_id: uuid.UUID) -> Submission:
        submission = await self._store.get_for_user(user_id)
        if submission is None:
            raise NotFound("No submission yet")
        return submission

    async def list(
        self,
        status: Optional[SubmissionStatus] = None,
        search: Optional[str] = None,
    ) -> list[Submission]:
        """Newest first; search is case-insensitive over name, email and location."""
        return await self._store.list(status=status, search=search)

    # -----------------------------------------------------------------------
    # Submit
    # -----------------------------------------------------------------------

    async def submit(
        self,
        user_id: uuid.UUID,
        email: str,
        profile: SubmissionProfile,
        profile_picture: Optional[Artifact],
        source_archive: Optional[Artifact],
    ) -> Submission:
        if profile_picture is None or source_archive is None or profile_picture.empty or source_archive.empty:
            raise ValidationError("Please upload both profile picture and source code")

        if await self._store.get_for_user(user_id) is not None:
            raise DuplicateSubmission()

        if self._storage is None:
            raise ArtifactUploadFailed("Object storage is not configured")

        s = self._settings
        picture_bytes = recompress_picture(
            profile_picture.data,
            max_dimension=s.picture_max_dimension,
            quality=s.picture_quality,
            max_bytes=s.picture_max_bytes,
        )

        uploaded: list[tuple[str, str]] = []
        picture_path = artifact_path(user_id, profile_picture.filename)
        source_path = artifact_path(user_id, source_archive.filename)
        try:
            await self._storage.upload(s.profile_picture_bucket, picture_path, picture_bytes, "image/jpeg")
            uploaded.append((s.profile_picture_bucket, picture_path))
            await self._storage.upload(
                s.source_code_bucket, source_path, source_archive.data, source_archive.content_type
            )
            uploaded.append((s.source_code_bucket, source_path))
        except ArtifactUploadFailed:
            await self._discard(uploaded)
            raise

        submission = Submission(
            user_id=user_id,
            email=email,
            full_name=profile.full_name.strip(),
            phone_number=profile.phone_number.strip(),
            location=profile.location.strip(),
            hobbies=profile.hobbies.strip(),
            profile_picture_url=self._storage.public_url(s.profile_picture_bucket, picture_path),
            source_code_url=self._storage.public_url(s.source_code_bucket, source_path),
            status=SubmissionStatus.PENDING.value,
        )
        try:
            submission = await self._store.insert(submission)
        except (DuplicateSubmission, StoreWriteFailed):
            await self._discard(uploaded)
            raise

        log.info("review.submitted", submission_id=str(submission.id), user_id=str(user_id))
        await self._publish(SUBMISSION_CREATED, submission)
        return submission

    async def _discard(self, uploaded: list[tuple[str, str]]) -> None:
        """Remove objects that no longer have a row pointing at them."""
        for bucket, path in uploaded:
            try:
                await self._storage.delete(bucket, path)
            except Exception as exc:
                log.warning("review.orphan_cleanup_failed", bucket=bucket, path=path, error=str(exc))

    # -----------------------------------------------------------------------
    # Decide
    # -----------------------------------------------------------------------

    async def decide(
        self,
        submission_id: uuid.UUID,
        evaluator_id: uuid.UUID,
        decision: Union[Decision, str],
        feedback: Optional[str],
    ) -> Submission:
        try:
            decision = Decision(decision)
        except ValueError:
            raise ValidationError(f"Invalid decision '{decision}'. Allowed: accepted, rejected")

        text = (feedback or "").strip()
        if not text:
            raise ValidationError("Please provide feedback before making a decision")

        try:
            updated = await asyncio.wait_for(
                self._store.decide(
                    submission_id,
                    decision,
                    text,
                    decided_by=evaluator_id,
                    decided_at=datetime.now(timezone.utc),
                ),
                timeout=self._settings.decide_timeout_seconds,
            )
        except asyncio.TimeoutError:
            log.warning("review.decide_timeout", submission_id=str(submission_id))
            raise UpstreamError(
                "Saving the decision timed out", retryable=True, submission_id=str(submission_id)
            )

        if updated is None:
            current = await self._store.get(submission_id)
            if current is None:
                raise NotFound(submission_id=str(submission_id))
            log.info(
                "review.already_decided",
                submission_id=str(submission_id),
                status=current.status,
                evaluator_id=str(evaluator_id),
            )
            raise AlreadyDecided(submission_id=str(submission_id), current_status=current.status)

        log.info(
            "review.decided",
            submission_id=str(submission_id),
            decision=decision.value,
            evaluator_id=str(evaluator_id),
        )
        await self._publish(SUBMISSION_UPDATED, updated)
        return updated
