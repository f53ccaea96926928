"""
Authentication endpoints.

- Email/Password login (roles are provisioned out of band)
- Logout with JWT revocation
- Session introspection for the client's role-based routing
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from devreview.core.auth import (
    CSRF_COOKIE,
    SESSION_COOKIE,
    ResolvedSession,
    create_jwt,
    generate_csrf_token,
    get_resolved_session,
    parse_role,
    sign_out,
    verify_password,
)
from devreview.core.config import get_settings
from devreview.core.database import get_session
from devreview.core.errors import AuthError, AuthorizationError
from devreview.models.user import User
from devreview_shared.schemas.common import ROLE_HOME
from devreview_shared.schemas.users import AuthResponse, LoginRequest, SessionRead

log = structlog.get_logger()
settings = get_settings()
router = APIRouter()

# Cookie config
COOKIE_KWARGS = {
    "httponly": True,
    "secure": not settings.debug,  # allow non-HTTPS in dev
    "samesite": "lax",
    "path": "/",
    "max_age": settings.jwt_expire_minutes * 60,
}


def _set_session_cookies(response: Response, token: str, csrf: str) -> None:
    """Set the session JWT and CSRF cookies on a response."""
    response.set_cookie(key=SESSION_COOKIE, value=token, **COOKIE_KWARGS)
    response.set_cookie(
        key=CSRF_COOKIE,
        value=csrf,
        httponly=False,  # JS must read this
        secure=not settings.debug,
        samesite="lax",
        path="/",
        max_age=settings.jwt_expire_minutes * 60,
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """Authenticate with email/password and receive a JWT session."""
    result = await session.execute(select(User).where(User.email == body.email))
    user = result.scalar_one_or_none()

    if not user or not user.password_hash:
        raise AuthError("Invalid email or password")

    if not verify_password(body.password, user.password_hash):
        log.warning("auth.login_failure", email=body.email, reason="bad_password")
        raise AuthError("Invalid email or password")

    role = parse_role(user.role)
    if role is None:
        log.warning("auth.login_failure", email=body.email, reason="invalid_role")
        raise AuthorizationError("Invalid user role")

    token, _jti = create_jwt(user.id)
    csrf = generate_csrf_token()
    _set_session_cookies(response, token, csrf)

    log.info("auth.login_success", user_id=str(user.id), role=role.value)
    return AuthResponse(
        user_id=str(user.id),
        email=user.email,
        role=role,
        home=ROLE_HOME[role],
        message="Login successful",
    )


@router.post("/logout")
async def logout(
    response: Response,
    resolved: ResolvedSession = Depends(get_resolved_session),
):
    """Invalidate the current session."""
    await sign_out(resolved)
    response.delete_cookie(SESSION_COOKIE, path="/")
    response.delete_cookie(CSRF_COOKIE, path="/")
    return {"message": "Logged out"}


@router.get("/session", response_model=SessionRead)
async def current_session(
    resolved: ResolvedSession = Depends(get_resolved_session),
):
    """Resolved identity and role of the caller; never fails."""
    return SessionRead(
        authenticated=resolved.authenticated,
        user_id=resolved.user_id,
        role=resolved.role,
        home=resolved.home,
    )
