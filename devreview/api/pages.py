"""
The three guarded pages.

Rendering is out of scope; each page answers with what the client needs to
render it. Access control happens in RouteGuardMiddleware before these run.
"""

from fastapi import APIRouter, Request

from devreview.core.auth import ANONYMOUS
from devreview_shared.schemas.common import ENTRY_PATH, EVALUATE_PATH, SUBMIT_PATH

router = APIRouter()


def _page(request: Request, name: str, path: str) -> dict:
    session = getattr(request.state, "session", ANONYMOUS)
    return {
        "page": name,
        "path": path,
        "authenticated": session.authenticated,
        "role": session.role.value if session.role else None,
        "home": session.home,
    }


@router.get(ENTRY_PATH)
async def login_page(request: Request):
    return _page(request, "login", ENTRY_PATH)


@router.get(SUBMIT_PATH)
async def submit_page(request: Request):
    return _page(request, "submit", SUBMIT_PATH)


@router.get(EVALUATE_PATH)
async def evaluate_page(request: Request):
    return _page(request, "evaluate", EVALUATE_PATH)
