"""
HTTP client for the review API.

Wraps one httpx.AsyncClient. After ``login`` the session token is sent as a
Bearer header, which also exempts the client from the cookie CSRF check.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional, Union

import httpx
import structlog

from devreview_shared.schemas.common import Decision, SubmissionStatus
from devreview_shared.schemas.submissions import SubmissionProfile, SubmissionRead
from devreview_shared.schemas.users import AuthResponse, SessionRead

from .errors import (
    NotFound,
    NotificationFailed,
    ReviewClientError,
    UpstreamFailed,
    ValidationFailed,
    error_from_response,
)

log = structlog.get_logger()

SESSION_COOKIE = "dr_session"
SUBMISSIONS_PATH = "/api/v1/submissions"

# (filename, content, content_type)
UploadFile = tuple[str, bytes, str]


class ReviewApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        verify_tls: bool = True,
        request_timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(request_timeout),
            verify=verify_tls,
            transport=transport,
        )
        if token:
            self.set_token(token)

    @property
    def authenticated(self) -> bool:
        return "Authorization" in self._http.headers

    def set_token(self, token: str) -> None:
        self._http.headers["Authorization"] = f"Bearer {token}"

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ReviewApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # --- transport ---

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise UpstreamFailed(f"Request timed out: {method} {path}", retryable=True) from exc
        except httpx.TransportError as exc:
            raise UpstreamFailed(f"Server unreachable: {exc}", retryable=True) from exc

        if response.is_error:
            error = error_from_response(response)
            log.info("api.request_failed", method=method, path=path, status=response.status_code, code=error.code)
            raise error
        return response

    def stream(self) -> Any:
        """Open the submission change stream (an httpx streaming context)."""
        return self._http.stream(
            "GET",
            f"{SUBMISSIONS_PATH}/stream",
            headers={"Accept": "text/event-stream"},
            timeout=httpx.Timeout(None),
        )

    # --- auth ---

    async def login(self, email: str, password: str) -> AuthResponse:
        response = await self._request("POST", "/auth/login", json={"email": email, "password": password})
        token = response.cookies.get(SESSION_COOKIE)
        if token:
            self.set_token(token)
        auth = AuthResponse.model_validate(response.json())
        log.info("api.logged_in", user_id=auth.user_id, role=auth.role)
        return auth

    async def logout(self) -> None:
        await self._request("POST", "/auth/logout")
        self._http.headers.pop("Authorization", None)

    async def session(self) -> SessionRead:
        response = await self._request("GET", "/auth/session")
        return SessionRead.model_validate(response.json())

    # --- submissions ---

    async def list_submissions(
        self,
        status: Optional[SubmissionStatus] = None,
        search: Optional[str] = None,
    ) -> list[SubmissionRead]:
        params = {}
        if status is not None:
            params["status"] = SubmissionStatus(status).value
        if search:
            params["search"] = search
        response = await self._request("GET", f"{SUBMISSIONS_PATH}/", params=params)
        return [SubmissionRead.model_validate(item) for item in response.json()]

    async def get_submission(self, submission_id: Union[uuid.UUID, str]) -> SubmissionRead:
        response = await self._request("GET", f"{SUBMISSIONS_PATH}/{submission_id}")
        return SubmissionRead.model_validate(response.json())

    async def my_submission(self) -> SubmissionRead:
        response = await self._request("GET", f"{SUBMISSIONS_PATH}/mine")
        return SubmissionRead.model_validate(response.json())

    async def submit(
        self,
        profile: SubmissionProfile,
        profile_picture: UploadFile,
        source_code: UploadFile,
    ) -> SubmissionRead:
        response = await self._request(
            "POST",
            f"{SUBMISSIONS_PATH}/",
            data=profile.model_dump(),
            files={"profile_picture": profile_picture, "source_code": source_code},
        )
        return SubmissionRead.model_validate(response.json())

    async def decide(
        self,
        submission_id: Union[uuid.UUID, str],
        decision: Union[Decision, str],
        feedback: str,
    ) -> SubmissionRead:
        response = await self._request(
            "POST",
            f"{SUBMISSIONS_PATH}/{submission_id}/decision",
            json={"decision": Decision(decision).value, "feedback": feedback},
        )
        return SubmissionRead.model_validate(response.json())

    async def notify(
        self,
        submission_id: Union[uuid.UUID, str],
        action: Union[Decision, str],
        feedback: str,
    ) -> None:
        """Ask the server to email the developer. Any failure is NotificationFailed.

        The decision is already saved when this runs, so an expired session
        or a missing row is reported as a failed notification too, with the
        original error code kept as ``cause``.
        """
        try:
            await self._request(
                "POST",
                "/api/notify",
                json={
                    "submissionId": str(submission_id),
                    "action": Decision(action).value,
                    "feedback": feedback,
                },
            )
        except NotificationFailed:
            raise
        except ReviewClientError as exc:
            raise NotificationFailed(
                exc.message,
                status=exc.status,
                retryable=not isinstance(exc, (NotFound, ValidationFailed)),
                cause=exc.code,
            ) from exc
