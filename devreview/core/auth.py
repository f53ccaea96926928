"""
Authentication, session resolution and role-based authorization.

Supports:
- Email/Password login with bcrypt hashes
- JWT session cookie (or Bearer token) with Redis revocation list
- Per-request role lookup from the users table (no caching)
- Role-based authorization dependencies (developer / evaluator)
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from devreview.core.config import get_settings
from devreview.core.database import get_session
from devreview.core.errors import AuthError, AuthorizationError
from devreview.core.redis import get_redis
from devreview.models.user import User
from devreview_shared.schemas.common import ENTRY_PATH, ROLE_HOME, Role

log = structlog.get_logger()
settings = get_settings()

SESSION_COOKIE = "dr_session"
CSRF_COOKIE = "dr_csrf"

RoleLookup = Callable[[uuid.UUID], Awaitable[Optional[str]]]

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    *,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed session JWT. Returns (token, jti).

    The role is deliberately not embedded: it is looked up on every request.
    """
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def generate_csrf_token() -> str:
    """Generate a random CSRF token."""
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------------
# JWT Revocation (Redis)
# ---------------------------------------------------------------------------

async def revoke_jwt(jti: str, ttl_seconds: int | None = None) -> None:
    """Add a JWT ID to the revocation list in Redis."""
    redis = await get_redis()
    ttl = ttl_seconds or settings.jwt_expire_minutes * 60
    await redis.setex(f"jwt:revoked:{jti}", ttl, "1")


async def is_jwt_revoked(jti: str) -> bool:
    """Check if a JWT ID has been revoked."""
    redis = await get_redis()
    return await redis.exists(f"jwt:revoked:{jti}") > 0


# ---------------------------------------------------------------------------
# Session / role resolution
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResolvedSession:
    """Identity and role of the caller. Never raises; see resolve_session."""

    authenticated: bool
    user_id: Optional[uuid.UUID] = None
    role: Optional[Role] = None
    jti: Optional[str] = None

    @property
    def home(self) -> str:
        if self.authenticated and self.role is not None:
            return ROLE_HOME[self.role]
        return ENTRY_PATH


ANONYMOUS = ResolvedSession(authenticated=False)


def parse_role(value: Optional[str]) -> Optional[Role]:
    """Map a stored role to a Role; unknown or missing values become None."""
    if not value:
        return None
    try:
        return Role(value)
    except ValueError:
        return None


def read_session_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization")
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:].strip()
        if token:
            return token
    return request.cookies.get(SESSION_COOKIE)


async def fetch_role(session: AsyncSession, user_id: uuid.UUID) -> Optional[str]:
    result = await session.execute(select(User.role).where(User.id == user_id))
    return result.scalar_one_or_none()


async def resolve_session(request: Request, lookup_role: RoleLookup) -> ResolvedSession:
    """Determine the caller's identity and role.

    Any session or upstream failure resolves to an unauthenticated session.
    A failed role lookup keeps the session authenticated with ``role=None``
    so the route guard forces a sign-out.
    """
    token = read_session_token(request)
    if not token:
        return ANONYMOUS

    try:
        payload = decode_jwt(token)
        jti = payload.get("jti")
        if jti and await is_jwt_revoked(jti):
            return ANONYMOUS
        user_id = uuid.UUID(payload["sub"])
    except Exception as exc:
        log.info("session.unresolved", error=str(exc))
        return ANONYMOUS

    try:
        raw_role = await lookup_role(user_id)
    except Exception as exc:
        log.warning("session.role_lookup_failed", user_id=str(user_id), error=str(exc))
        raw_role = None

    return ResolvedSession(
        authenticated=True,
        user_id=user_id,
        role=parse_role(raw_role),
        jti=jti,
    )


async def sign_out(resolved: ResolvedSession) -> None:
    """Revoke the session token. Revocation failures are logged, not raised."""
    if not resolved.jti:
        return
    try:
        await revoke_jwt(resolved.jti)
    except Exception as exc:
        log.warning("session.revoke_failed", jti=resolved.jti, error=str(exc))


# ---------------------------------------------------------------------------
# Authorization dependencies
# ---------------------------------------------------------------------------

async def get_resolved_session(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ResolvedSession:
    async def lookup(user_id: uuid.UUID) -> Optional[str]:
        return await fetch_role(session, user_id)

    resolved = await resolve_session(request, lookup)
    request.state.session = resolved
    return resolved


async def require_authenticated(
    resolved: ResolvedSession = Depends(get_resolved_session),
) -> ResolvedSession:
    """Any signed-in user with a valid role."""
    if not resolved.authenticated:
        raise AuthError()
    if resolved.role is None:
        raise AuthorizationError("Account has no valid role")
    return resolved


async def require_developer(
    resolved: ResolvedSession = Depends(require_authenticated),
) -> ResolvedSession:
    if resolved.role != Role.DEVELOPER:
        raise AuthorizationError("Developer access required")
    return resolved


async def require_evaluator(
    resolved: ResolvedSession = Depends(require_authenticated),
) -> ResolvedSession:
    if resolved.role != Role.EVALUATOR:
        raise AuthorizationError("Evaluator access required")
    return resolved
