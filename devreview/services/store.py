"""
Submission store adapter: typed CRUD + query interface over the submissions table.

Owns no review logic. The one behavioural guarantee it provides is that
``decide`` is a single conditional write, so the database arbitrates
concurrent decisions on the same row.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional, Protocol

import structlog
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from devreview.core.errors import DuplicateSubmission, StoreWriteFailed
from devreview.models.submission import Submission
from devreview_shared.schemas.common import Decision, SubmissionStatus

log = structlog.get_logger()


class SubmissionStore(Protocol):
    async def get(self, submission_id: uuid.UUID) -> Optional[Submission]: ...

    async def get_for_user(self, user_id: uuid.UUID) -> Optional[Submission]: ...

    async def insert(self, submission: Submission) -> Submission: ...

    async def decide(
        self,
        submission_id: uuid.UUID,
        decision: Decision,
        feedback: str,
        decided_by: uuid.UUID,
        decided_at: datetime,
    ) -> Optional[Submission]: ...

    async def list(
        self,
        status: Optional[SubmissionStatus] = None,
        search: Optional[str] = None,
    ) -> list[Submission]: ...


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class SqlSubmissionStore:
    """SubmissionStore backed by an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, submission_id: uuid.UUID) -> Optional[Submission]:
        return await self._session.get(Submission, submission_id, populate_existing=True)

    async def get_for_user(self, user_id: uuid.UUID) -> Optional[Submission]:
        result = await self._session.execute(
            select(Submission)
            .where(Submission.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def insert(self, submission: Submission) -> Submission:
        self._session.add(submission)
        try:
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            if await self.get_for_user(submission.user_id) is not None:
                raise DuplicateSubmission() from exc
            raise StoreWriteFailed("Failed to save submission") from exc
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StoreWriteFailed("Failed to save submission", retryable=True) from exc
        await self._session.refresh(submission)
        return submission

    async def decide(
        self,
        submission_id: uuid.UUID,
        decision: Decision,
        feedback: str,
        decided_by: uuid.UUID,
        decided_at: datetime,
    ) -> Optional[Submission]:
        """Set the terminal status only if the row is still pending.

        Returns the updated row, or None when zero rows matched (unknown id
        or already decided).
        """
        stmt = (
            update(Submission)
            .where(
                Submission.id == submission_id,
                Submission.status == SubmissionStatus.PENDING.value,
            )
            .values(
                status=decision.value,
                feedback=feedback,
                decided_by=decided_by,
                decided_at=decided_at,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self._session.execute(stmt)
            if result.rowcount != 1:
                await self._session.rollback()
                return None
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise StoreWriteFailed("Failed to save decision", retryable=True) from exc
        return await self.get(submission_id)

    async def list(
        self,
        status: Optional[SubmissionStatus] = None,
        search: Optional[str] = None,
    ) -> list[Submission]:
        stmt = select(Submission)
        if status is not None:
            stmt = stmt.where(Submission.status == SubmissionStatus(status).value)
        term = (search or "").strip()
        if term:
            pattern = _like_pattern(term)
            stmt = stmt.where(
                or_(
                    Submission.full_name.ilike(pattern, escape="\\"),
                    Submission.email.ilike(pattern, escape="\\"),
                    Submission.location.ilike(pattern, escape="\\"),
                )
            )
        stmt = stmt.order_by(Submission.created_at.desc()).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
