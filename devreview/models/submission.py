"""Submission model (one row per developer)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class Submission(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "submissions"
    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected')", name="ck_submissions_status"
        ),
    )

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, unique=True, index=True)
    full_name: str = Field(nullable=False)
    email: str = Field(nullable=False)
    phone_number: str = Field(nullable=False)
    location: str = Field(nullable=False)
    hobbies: str = Field(nullable=False, sa_type=sa.Text)
    profile_picture_url: str = Field(nullable=False)
    source_code_url: str = Field(nullable=False)
    status: str = Field(nullable=False, default="pending", index=True)  # pending | accepted | rejected
    feedback: Optional[str] = Field(default=None, sa_type=sa.Text)
    decided_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    decided_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
