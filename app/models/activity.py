from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.auth.models import utcnow
from app.core.database import Base


class ActivityType(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    LOGIN = "login"
    LOGOUT = "logout"
    ASSIGN = "assign"


class ResourceType(StrEnum):
    USER = "user"
    CUSTOMER = "customer"
    LEAD = "lead"
    TEAM = "team"


class Activity(Base):
    """Append-only audit row; only the retention sweep deletes these."""

    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(16), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(36), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "type IN ('create', 'update', 'delete', 'login', 'logout', 'assign')",
            name="ck_activities_type",
        ),
        CheckConstraint(
            "resource_type IN ('user', 'customer', 'lead', 'team')",
            name="ck_activities_resource_type",
        ),
        Index("ix_activities_user_id", "user_id"),
        Index("ix_activities_resource", "resource_type", "resource_id"),
        Index("ix_activities_created_at", "created_at"),
    )
