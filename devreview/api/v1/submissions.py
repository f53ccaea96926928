"""
Submission endpoints: submit, list, detail, decide, realtime stream.

Lifecycle: pending → accepted | rejected (terminal).
- Developers submit exactly once and can read their own row.
- Evaluators list/search all rows and decide pending ones with feedback.
- Change events are pushed over SSE; streams are scoped per role.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

import pydantic
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from sse_starlette.sse import EventSourceResponse

from devreview.api.deps import get_dispatcher, get_review_service
from devreview.core.auth import (
    ResolvedSession,
    require_authenticated,
    require_developer,
    require_evaluator,
)
from devreview.core.config import get_settings
from devreview.core.database import get_session
from devreview.core.errors import AuthError, ValidationError
from devreview.core.events import submission_event_stream
from devreview.models.user import User
from devreview.services.notifications import NotificationDispatcher
from devreview.services.review import Artifact, ReviewService
from devreview_shared.schemas.common import Role, SubmissionStatus
from devreview_shared.schemas.submissions import (
    DecisionRequest,
    SubmissionProfile,
    SubmissionRead,
)

router = APIRouter()


async def _read_artifact(upload: Optional[UploadFile]) -> Optional[Artifact]:
    if upload is None:
        return None
    data = await upload.read()
    return Artifact(
        filename=upload.filename or "upload",
        data=data,
        content_type=upload.content_type or "application/octet-stream",
    )


# ---------------------------------------------------------------------------
# Developer
# ---------------------------------------------------------------------------


@router.post("/", response_model=SubmissionRead, status_code=201)
async def create_submission_endpoint(
    full_name: str = Form(...),
    phone_number: str = Form(...),
    location: str = Form(...),
    hobbies: str = Form(...),
    profile_picture: Optional[UploadFile] = File(None),
    source_code: Optional[UploadFile] = File(None),
    auth: ResolvedSession = Depends(require_developer),
    session: AsyncSession = Depends(get_session),
    service: ReviewService = Depends(get_review_service),
):
    """Submit the developer's application (multipart: profile fields + two files)."""
    try:
        profile = SubmissionProfile(
            full_name=full_name,
            phone_number=phone_number,
            location=location,
            hobbies=hobbies,
        )
    except pydantic.ValidationError as exc:
        raise ValidationError("All profile fields are required", fields=[str(e["loc"][0]) for e in exc.errors()])

    user = await session.get(User, auth.user_id)
    if user is None:
        raise AuthError("User not found")

    submission = await service.submit(
        auth.user_id,
        user.email,
        profile,
        await _read_artifact(profile_picture),
        await _read_artifact(source_code),
    )
    return SubmissionRead.model_validate(submission)


@router.get("/mine", response_model=SubmissionRead)
async def get_own_submission_endpoint(
    auth: ResolvedSession = Depends(require_developer),
    service: ReviewService = Depends(get_review_service),
):
    """The developer's own submission and its review status."""
    return SubmissionRead.model_validate(await service.get_for_user(auth.user_id))


# ---------------------------------------------------------------------------
# Realtime
# ---------------------------------------------------------------------------


@router.get("/stream")
async def stream_submissions_endpoint(
    request: Request,
    auth: ResolvedSession = Depends(require_authenticated),
):
    """
    Stream submission change events via SSE.

    Evaluators receive every change; developers only changes to their own
    submission. Each connection opens with `stream.ready`; clients must
    re-fetch on it since nothing is replayed.
    """
    scope = None if auth.role == Role.EVALUATOR else auth.user_id
    return EventSourceResponse(submission_event_stream(request, user_id=scope))


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


@router.get("/", response_model=List[SubmissionRead])
async def list_submissions_endpoint(
    status: Optional[SubmissionStatus] = None,
    search: Optional[str] = Query(None, max_length=200),
    auth: ResolvedSession = Depends(require_evaluator),
    service: ReviewService = Depends(get_review_service),
):
    """List submissions newest first, filtered by status and a name/email/location search."""
    submissions = await service.list(status=status, search=search)
    return [SubmissionRead.model_validate(s) for s in submissions]


@router.get("/{submission_id}", response_model=SubmissionRead)
async def get_submission_endpoint(
    submission_id: uuid.UUID,
    auth: ResolvedSession = Depends(require_evaluator),
    service: ReviewService = Depends(get_review_service),
):
    return SubmissionRead.model_validate(await service.get(submission_id))


@router.post("/{submission_id}/decision", response_model=SubmissionRead)
async def decide_submission_endpoint(
    submission_id: uuid.UUID,
    body: DecisionRequest,
    background_tasks: BackgroundTasks,
    auth: ResolvedSession = Depends(require_evaluator),
    service: ReviewService = Depends(get_review_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Accept or reject a pending submission. 409 ALREADY_DECIDED if another evaluator won."""
    submission = await service.decide(submission_id, auth.user_id, body.decision, body.feedback)
    if get_settings().auto_notify:
        background_tasks.add_task(dispatcher.notify_in_background, submission)
    return SubmissionRead.model_validate(submission)
