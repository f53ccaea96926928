"""
Route guard for the three pages.

``guard_route`` is a pure decision over (authenticated, role, path);
``RouteGuardMiddleware`` resolves the session on every page request,
applies the decision and performs the forced sign-out.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from devreview.core.auth import (
    CSRF_COOKIE,
    SESSION_COOKIE,
    ResolvedSession,
    RoleLookup,
    fetch_role,
    resolve_session,
    sign_out,
)
from devreview.core.database import get_session_context
from devreview_shared.schemas.common import (
    ENTRY_PATH,
    EVALUATE_PATH,
    ROLE_HOME,
    SUBMIT_PATH,
    Role,
)

log = structlog.get_logger()

GUARDED_PATHS = frozenset({ENTRY_PATH, SUBMIT_PATH, EVALUATE_PATH})

ALLOWED_PATHS: dict[Role, frozenset[str]] = {
    Role.DEVELOPER: frozenset({ENTRY_PATH, SUBMIT_PATH}),
    Role.EVALUATOR: frozenset({ENTRY_PATH, EVALUATE_PATH}),
}


class GuardAction(str, Enum):
    ALLOW = "allow"
    REDIRECT = "redirect"


@dataclass(frozen=True)
class GuardDecision:
    action: GuardAction
    location: Optional[str] = None
    sign_out: bool = False


ALLOW = GuardDecision(GuardAction.ALLOW)


def guard_route(path: str, session: ResolvedSession) -> GuardDecision:
    if not session.authenticated:
        if path != ENTRY_PATH:
            return GuardDecision(GuardAction.REDIRECT, ENTRY_PATH)
        return ALLOW

    if session.role is None:
        # Partially-provisioned account: never let it near either area.
        return GuardDecision(GuardAction.REDIRECT, ENTRY_PATH, sign_out=True)

    if path not in ALLOWED_PATHS[session.role]:
        return GuardDecision(GuardAction.REDIRECT, ROLE_HOME[session.role])
    return ALLOW


async def _lookup_role_from_db(user_id: uuid.UUID) -> Optional[str]:
    async with get_session_context() as session:
        return await fetch_role(session, user_id)


class RouteGuardMiddleware(BaseHTTPMiddleware):
    """Enforce the route matrix on every navigation to a guarded page."""

    def __init__(self, app, lookup_role: RoleLookup | None = None):
        super().__init__(app)
        self._lookup_role = lookup_role or _lookup_role_from_db

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if path not in GUARDED_PATHS:
            return await call_next(request)

        session = await resolve_session(request, self._lookup_role)
        request.state.session = session
        decision = guard_route(path, session)

        if decision.action == GuardAction.ALLOW:
            return await call_next(request)

        response = RedirectResponse(decision.location, status_code=307)
        if decision.sign_out:
            log.warning("guard.forced_sign_out", user_id=str(session.user_id), path=path)
            await sign_out(session)
            response.delete_cookie(SESSION_COOKIE, path="/")
            response.delete_cookie(CSRF_COOKIE, path="/")
        return response
