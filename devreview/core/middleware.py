"""
Browser-facing request protection.

- Response headers, with the image policy opened up for the artifact CDN
- Double-submit CSRF check for cookie sessions; Bearer clients bypass it
"""

from __future__ import annotations

import hmac
from typing import Optional
from urllib.parse import urlsplit

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from devreview.core.auth import CSRF_COOKIE, SESSION_COOKIE
from devreview.core.config import Settings, get_settings
from devreview.core.errors import CsrfRejected, error_response

CSRF_HEADER = "X-CSRF-Token"
UNCHECKED_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
CSRF_EXEMPT_PATHS = frozenset({"/auth/login"})


def security_headers(settings: Settings) -> dict[str, str]:
    """Headers attached to every response for the given settings."""
    img_sources = ["'self'", "data:"]
    if settings.storage_public_base_url:
        parts = urlsplit(settings.storage_public_base_url)
        img_sources.append(f"{parts.scheme}://{parts.netloc}")
    else:
        img_sources.append("https:")

    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "same-origin",
        "Content-Security-Policy": (
            "default-src 'self'; "
            f"img-src {' '.join(img_sources)}; "
            "form-action 'self'; "
            "frame-ancestors 'none'"
        ),
    }
    # Dev servers run over plain HTTP
    if not settings.debug:
        headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return headers


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, settings: Optional[Settings] = None):
        super().__init__(app)
        self.headers = security_headers(settings or get_settings())

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers.update(self.headers)
        if request.url.path.startswith("/auth/"):
            response.headers["Cache-Control"] = "no-store"
        return response


def csrf_ok(request: Request) -> bool:
    """True when a state-changing cookie request echoes its CSRF cookie."""
    if request.method in UNCHECKED_METHODS or request.url.path in CSRF_EXEMPT_PATHS:
        return True
    if request.headers.get("Authorization") or SESSION_COOKIE not in request.cookies:
        return True
    cookie_token = request.cookies.get(CSRF_COOKIE) or ""
    header_token = request.headers.get(CSRF_HEADER) or ""
    return bool(cookie_token) and hmac.compare_digest(cookie_token, header_token)


class CSRFMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        if not csrf_ok(request):
            return error_response(CsrfRejected())
        return await call_next(request)
