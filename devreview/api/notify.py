"""
Decision notification endpoint.

POST /api/notify {submissionId, action, feedback}

Sends the developer one email for an already-saved decision. Called by the
evaluator's client right after a decision, and again for "resend".
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from devreview.api.deps import get_dispatcher, get_review_service
from devreview.core.auth import ResolvedSession, require_evaluator
from devreview.core.errors import NotificationFailed
from devreview.services.notifications import NotificationDispatcher
from devreview.services.review import ReviewService
from devreview_shared.schemas.submissions import NotifyRequest, NotifyResponse

log = structlog.get_logger()
router = APIRouter()


@router.post("/notify", response_model=NotifyResponse)
async def notify_developer(
    body: NotifyRequest,
    auth: ResolvedSession = Depends(require_evaluator),
    service: ReviewService = Depends(get_review_service),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Email the developer about a decision. 500 with {error} if sending fails."""
    submission = await service.get(body.submission_id)

    try:
        await dispatcher.notify_submission(submission, body.action, body.feedback)
    except NotificationFailed as exc:
        return JSONResponse(
            status_code=500,
            content={"error": exc.message, "retryable": exc.retryable},
        )

    return NotifyResponse(success=True)
