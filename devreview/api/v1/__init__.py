"""
API v1 Router

Submission endpoints live under /submissions; auth is mounted separately at /auth.
"""

from fastapi import APIRouter
from . import submissions

router = APIRouter()

router.include_router(submissions.router, prefix="/submissions", tags=["Submissions"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/submissions",
            "/submissions/mine",
            "/submissions/stream",
            "/submissions/{id}",
            "/submissions/{id}/decision",
        ],
    }
