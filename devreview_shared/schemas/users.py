"""Session / identity schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, EmailStr, UUID4

from .common import Role


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AuthResponse(BaseModel):
    user_id: str
    email: str
    role: Optional[Role] = None
    home: str
    message: str


class SessionRead(BaseModel):
    authenticated: bool
    user_id: Optional[UUID4] = None
    role: Optional[Role] = None
    home: str = "/"
