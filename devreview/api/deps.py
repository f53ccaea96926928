"""FastAPI dependency providers for the service layer."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from devreview.core.database import get_session
from devreview.core.mailer import get_transport
from devreview.core.storage import ObjectStorage, get_storage
from devreview.services.notifications import NotificationDispatcher
from devreview.services.review import ReviewService
from devreview.services.store import SqlSubmissionStore


def get_object_storage() -> ObjectStorage:
    return get_storage()


async def get_review_service(
    session: AsyncSession = Depends(get_session),
    storage: ObjectStorage = Depends(get_object_storage),
) -> ReviewService:
    return ReviewService(SqlSubmissionStore(session), storage)


def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(get_transport())
