from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr, Field


CustomerStatus = Literal["active", "inactive", "prospect"]
LeadStatus = Literal["new", "qualified", "proposal", "negotiation", "closed_won", "closed_lost"]
LeadPriority = Literal["low", "medium", "high", "critical"]


def _strip(value: object) -> object:
    return value.strip() if isinstance(value, str) else value


Text = Annotated[str, BeforeValidator(_strip)]


class CustomerCreate(BaseModel):
    name: Text = Field(min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=64)
    company: Text | None = Field(default=None, max_length=255)
    status: CustomerStatus = "active"
    tags: list[str] = Field(default_factory=list)
    notes: Text | None = None
    value: float = Field(default=0, ge=0)
    industry: Text | None = Field(default=None, max_length=128)
    source: Text | None = Field(default=None, max_length=128)
    last_contact_date: datetime | None = None
    assigned_to: str | None = None


class CustomerUpdate(BaseModel):
    name: Text | None = Field(default=None, min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=64)
    company: Text | None = Field(default=None, max_length=255)
    status: CustomerStatus | None = None
    tags: list[str] | None = None
    notes: Text | None = None
    value: float | None = Field(default=None, ge=0)
    industry: Text | None = Field(default=None, max_length=128)
    source: Text | None = Field(default=None, max_length=128)
    last_contact_date: datetime | None = None
    assigned_to: str | None = None


class CustomerRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str | None
    phone: str | None
    company: str | None
    status: str
    tags: list[str]
    notes: str | None
    value: float
    industry: str | None
    source: str | None
    last_contact_date: datetime | None
    owner_id: str
    owner_name: str | None = None
    team_id: str | None
    team_name: str | None = None
    assigned_to: str | None
    assigned_user_name: str | None = None
    created_by: str | None
    updated_by: str | None
    created_at: datetime
    updated_at: datetime


class LeadCreate(BaseModel):
    title: Text = Field(min_length=1, max_length=255)
    description: Text | None = None
    customer_id: str = Field(min_length=1)
    status: LeadStatus = "new"
    value: float = Field(default=0, ge=0)
    expected_close_date: datetime | None = None
    priority: LeadPriority = "medium"
    source: Text | None = Field(default=None, max_length=128)
    assigned_to: str | None = None


class LeadUpdate(BaseModel):
    title: Text | None = Field(default=None, min_length=1, max_length=255)
    description: Text | None = None
    status: LeadStatus | None = None
    value: float | None = Field(default=None, ge=0)
    expected_close_date: datetime | None = None
    priority: LeadPriority | None = None
    source: Text | None = Field(default=None, max_length=128)
    assigned_to: str | None = None


class LeadRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str | None
    customer_id: str
    customer_name: str | None = None
    customer_company: str | None = None
    status: str
    value: float
    expected_close_date: datetime | None
    priority: str
    source: str | None
    owner_id: str
    owner_name: str | None = None
    team_id: str | None
    team_name: str | None = None
    assigned_to: str | None
    assigned_user_name: str | None = None
    created_by: str | None
    updated_by: str | None
    created_at: datetime
    updated_at: datetime
