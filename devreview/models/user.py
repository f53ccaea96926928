"""User model."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class User(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(nullable=False, unique=True, index=True)
    role: Optional[str] = Field(default=None)  # developer | evaluator; assigned out of band
    password_hash: Optional[str] = Field(default=None)  # bcrypt hash for email/password login
