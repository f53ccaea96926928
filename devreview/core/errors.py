"""
Error taxonomy for the review platform.

Every error carries an HTTP status and a stable machine-readable code.
The API layer renders them with the same envelope the middleware uses:
``{"error": {"code", "message", "status", ...context}}``.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

log = structlog.get_logger()


class ReviewError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str | None = None, **context: Any):
        self.message = message or self.__class__.__doc__ or self.code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "status": self.status_code,
            **self.context,
        }


class AuthError(ReviewError):
    """Authentication required."""

    status_code = 401
    code = "UNAUTHENTICATED"


class AuthorizationError(ReviewError):
    """Your role does not allow this action."""

    status_code = 403
    code = "FORBIDDEN"


class CsrfRejected(AuthorizationError):
    """Invalid or missing CSRF token."""

    code = "CSRF_VALIDATION_FAILED"


class ValidationError(ReviewError):
    """The request is invalid."""

    status_code = 422
    code = "VALIDATION_FAILED"


class ArtifactTooLarge(ValidationError):
    """Profile picture is still too large after recompression."""

    status_code = 413
    code = "ARTIFACT_TOO_LARGE"


class NotFound(ReviewError):
    """Submission not found."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(ReviewError):
    status_code = 409
    code = "CONFLICT"


class AlreadyDecided(ConflictError):
    """This submission has already been decided."""

    code = "ALREADY_DECIDED"


class DuplicateSubmission(ConflictError):
    """You have already submitted an application."""

    code = "DUPLICATE_SUBMISSION"


class UpstreamError(ReviewError):
    """An upstream service failed."""

    status_code = 502
    code = "UPSTREAM_FAILED"

    def __init__(self, message: str | None = None, *, retryable: bool = False, **context: Any):
        super().__init__(message, retryable=retryable, **context)
        self.retryable = retryable


class ArtifactUploadFailed(UpstreamError):
    """Uploading an artifact to object storage failed."""

    code = "ARTIFACT_UPLOAD_FAILED"


class StoreWriteFailed(UpstreamError):
    """Writing to the submission store failed."""

    code = "STORE_WRITE_FAILED"


class NotificationFailed(UpstreamError):
    """Decision saved, but the notification email could not be sent."""

    code = "NOTIFICATION_FAILED"


def error_response(exc: ReviewError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


async def review_error_handler(request: Request, exc: ReviewError) -> JSONResponse:
    if exc.status_code >= 500:
        log.warning("request.upstream_error", path=request.url.path, code=exc.code, error=exc.message)
    return error_response(exc)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ReviewError, review_error_handler)
