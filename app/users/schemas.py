from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from app.auth.schemas import UserRead

RoleName = Literal["admin", "manager", "sales_rep"]


class UserUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    department: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    role: RoleName | None = None
    team_id: str | None = None
    is_active: bool | None = None


class UserListItem(UserRead):
    team_name: str | None = None


class TeamCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    manager_id: str | None = None
    department: str | None = Field(default=None, max_length=255)


class TeamRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None
    manager_id: str | None
    department: str | None
    is_active: bool
    member_count: int = 0
    created_at: datetime
    updated_at: datetime
