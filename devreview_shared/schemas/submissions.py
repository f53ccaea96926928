"""Submission-related Pydantic schemas shared by the server and the client library."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import UUID4

from .common import Decision, SubmissionStatus


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

class SubmissionProfile(BaseModel):
    """Profile fields entered by the developer. All required."""
    full_name: str = Field(min_length=1, max_length=200)
    phone_number: str = Field(min_length=1, max_length=50)
    location: str = Field(min_length=1, max_length=200)
    hobbies: str = Field(min_length=1, max_length=5000)


class SubmissionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    user_id: UUID4
    full_name: str
    email: str
    phone_number: str
    location: str
    hobbies: str
    profile_picture_url: str
    source_code_url: str
    status: SubmissionStatus
    feedback: Optional[str] = None
    decided_by: Optional[UUID4] = None
    decided_at: Optional[datetime] = None
    created_at: datetime


class SubmissionFilter(BaseModel):
    """The list query: exact status AND a case-insensitive substring search.

    ``matches`` mirrors the server's SQL so a client can decide locally
    whether a pushed row belongs in a filtered list.
    """
    status: Optional[SubmissionStatus] = None
    search: Optional[str] = Field(None, max_length=200)

    @property
    def term(self) -> str:
        return (self.search or "").strip().lower()

    def matches(self, submission: Any) -> bool:
        if self.status is not None and SubmissionStatus(submission.status) != self.status:
            return False
        term = self.term
        if not term:
            return True
        return any(
            term in (getattr(submission, column) or "").lower()
            for column in ("full_name", "email", "location")
        )


# ---------------------------------------------------------------------------
# Decision / notification
# ---------------------------------------------------------------------------

class DecisionRequest(BaseModel):
    decision: Decision
    feedback: str


class NotifyRequest(BaseModel):
    """Body of POST /api/notify (camelCase on the wire)."""
    model_config = ConfigDict(populate_by_name=True)

    submission_id: UUID4 = Field(alias="submissionId")
    action: Decision
    feedback: str


class NotifyResponse(BaseModel):
    success: bool = True


# ---------------------------------------------------------------------------
# Realtime
# ---------------------------------------------------------------------------

class SubmissionEvent(BaseModel):
    """A change event pushed on the realtime channel."""
    type: str  # submission.created | submission.updated
    submission_id: UUID4
    user_id: UUID4
    payload: dict[str, Any]
    timestamp: datetime
