from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, CheckConstraint, DateTime, Float, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.auth.models import Team, User, new_id, utcnow
from app.core.database import Base


CUSTOMER_STATUSES = ("active", "inactive", "prospect")
LEAD_STATUSES = ("new", "qualified", "proposal", "negotiation", "closed_won", "closed_lost")
LEAD_PRIORITIES = ("low", "medium", "high", "critical")


def _in_clause(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active", server_default="active")
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_contact_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    value: Mapped[float] = mapped_column(Float, nullable=False, default=0, server_default="0")
    industry: Mapped[str | None] = mapped_column(String(128), nullable=True)
    source: Mapped[str | None] = mapped_column(String(128), nullable=True)
    owner_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    team_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    assigned_to: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    owner: Mapped[User] = relationship("User", foreign_keys=[owner_id])
    team: Mapped[Team | None] = relationship("Team", foreign_keys=[team_id])
    assignee: Mapped[User | None] = relationship("User", foreign_keys=[assigned_to])
    leads: Mapped[list[Lead]] = relationship(
        "Lead",
        back_populates="customer",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint(_in_clause("status", CUSTOMER_STATUSES), name="ck_customers_status"),
        Index("ix_customers_owner_id", "owner_id"),
        Index("ix_customers_team_id", "team_id"),
        Index("ix_customers_updated_at", "updated_at"),
    )


class Lead(Base):
    __tablename__ = "leads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="new", server_default="new")
    value: Mapped[float] = mapped_column(Float, nullable=False, default=0, server_default="0")
    expected_close_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="medium", server_default="medium")
    source: Mapped[str | None] = mapped_column(String(128), nullable=True)
    owner_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    team_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    assigned_to: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    customer: Mapped[Customer] = relationship("Customer", back_populates="leads")
    owner: Mapped[User] = relationship("User", foreign_keys=[owner_id])
    team: Mapped[Team | None] = relationship("Team", foreign_keys=[team_id])
    assignee: Mapped[User | None] = relationship("User", foreign_keys=[assigned_to])

    __table_args__ = (
        CheckConstraint(_in_clause("status", LEAD_STATUSES), name="ck_leads_status"),
        CheckConstraint(_in_clause("priority", LEAD_PRIORITIES), name="ck_leads_priority"),
        Index("ix_leads_customer_id", "customer_id"),
        Index("ix_leads_owner_id", "owner_id"),
        Index("ix_leads_team_id", "team_id"),
        Index("ix_leads_updated_at", "updated_at"),
    )
