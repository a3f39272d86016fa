from __future__ import annotations

import re
from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator


_PHONE_RE = re.compile(r"^\+?[0-9 ()-]{7,20}$")


def normalize_email(value: str) -> str:
    return value.strip().lower()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email", mode="after")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return normalize_email(value)


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str
    phone: str | None = None
    department: str | None = Field(default=None, max_length=255)

    @field_validator("name", "department", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="after")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator("password")
    @classmethod
    def _password_strength(cls, value: str) -> str:
        if len(value) < 8:
            raise ValueError("Password must be at least 8 characters long")
        if not (re.search(r"[a-z]", value) and re.search(r"[A-Z]", value) and re.search(r"\d", value)):
            raise ValueError("Password must contain at least one lowercase letter, one uppercase letter, and one number")
        return value

    @field_validator("phone")
    @classmethod
    def _phone_format(cls, value: str | None) -> str | None:
        if value is not None and not _PHONE_RE.match(value):
            raise ValueError("Valid phone number is required")
        return value


class RefreshTokenRequest(BaseModel):
    refresh_token: str | None = Field(default=None, validation_alias=AliasChoices("refresh_token", "refreshToken"))


class LogoutRequest(RefreshTokenRequest):
    pass


class UserRead(BaseModel):
    """Public user representation; credential and lockout columns are never exposed."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    role: str
    team_id: str | None
    department: str | None
    phone: str | None
    avatar: str | None = None
    is_active: bool
    last_login_at: datetime | None
    created_at: datetime
    updated_at: datetime


class AuthSession(BaseModel):
    user: UserRead
    access_token: str
    refresh_token: str
