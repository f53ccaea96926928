"""
Client-side errors, one per server error code.

``error_from_response`` turns a non-2xx response into the matching class.
"""

from __future__ import annotations

from typing import Any

import httpx


class ReviewClientError(Exception):
    code = "CLIENT_ERROR"
    retryable = False

    def __init__(self, message: str, *, status: int | None = None, **context: Any):
        super().__init__(message)
        self.message = message
        self.status = status
        self.context = context
        if "retryable" in context:
            self.retryable = bool(context["retryable"])


class Unauthenticated(ReviewClientError):
    code = "UNAUTHENTICATED"


class Forbidden(ReviewClientError):
    code = "FORBIDDEN"


class ValidationFailed(ReviewClientError):
    code = "VALIDATION_FAILED"


class ArtifactTooLarge(ValidationFailed):
    code = "ARTIFACT_TOO_LARGE"


class NotFound(ReviewClientError):
    code = "NOT_FOUND"


class AlreadyDecided(ReviewClientError):
    code = "ALREADY_DECIDED"


class DuplicateSubmission(ReviewClientError):
    code = "DUPLICATE_SUBMISSION"


class UpstreamFailed(ReviewClientError):
    code = "UPSTREAM_FAILED"


class NotificationFailed(UpstreamFailed):
    code = "NOTIFICATION_FAILED"


_BY_CODE: dict[str, type[ReviewClientError]] = {
    cls.code: cls
    for cls in (
        Unauthenticated,
        Forbidden,
        ValidationFailed,
        ArtifactTooLarge,
        NotFound,
        AlreadyDecided,
        DuplicateSubmission,
        UpstreamFailed,
        NotificationFailed,
    )
}

_BY_STATUS: dict[int, type[ReviewClientError]] = {
    401: Unauthenticated,
    403: Forbidden,
    404: NotFound,
    413: ArtifactTooLarge,
    422: ValidationFailed,
}


def error_from_response(response: httpx.Response) -> ReviewClientError:
    """Map an error response to a ReviewClientError subclass.

    Understands the API envelope ``{"error": {"code", "message", ...}}``,
    the notify endpoint's flat ``{"error": "message"}`` and FastAPI's own
    ``{"detail": ...}`` validation bodies.
    """
    status = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = None

    code = None
    message = response.reason_phrase or f"HTTP {status}"
    context: dict[str, Any] = {}

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            code = error.get("code")
            message = error.get("message", message)
            context = {k: v for k, v in error.items() if k not in ("code", "message", "status")}
        elif isinstance(error, str):
            message = error
            context = {k: v for k, v in body.items() if k != "error"}
        elif "detail" in body:
            message = str(body["detail"])

    cls = _BY_CODE.get(code) if code else None
    if cls is None:
        cls = _BY_STATUS.get(status)
    if cls is None:
        cls = UpstreamFailed if status >= 500 else ReviewClientError
    return cls(message, status=status, **context)
