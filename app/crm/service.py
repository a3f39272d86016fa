from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.responses import Pagination
from app.auth.models import User
from app.core.context import RequestContext
from app.core.errors import ValidationError
from app.crm.models import Customer, Lead
from app.crm.repositories import CustomerRepository, LeadRepository
from app.crm.schemas import CustomerCreate, CustomerRead, CustomerUpdate, LeadCreate, LeadRead, LeadUpdate
from app.models.activity import ActivityType, ResourceType
from app.platform.security.context import Principal
from app.platform.security.policies import Action, Resource
from app.platform.security.repository import BaseRepository
from app.platform.security.rls import ensure_permission, ensure_record_access
from app.services.audit import ActivityWriter, activity_writer, snapshot_model

logger = logging.getLogger("app.crm")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ScopedRecordService:
    """Shared flow for owner/team/assignee scoped resources.

    Every operation checks the permission matrix first. Single-record
    operations then load the row (404 when missing) and run the record
    predicate (403 when out of scope). Mutations commit, then write the
    activity row.
    """

    resource: Resource
    resource_type: ResourceType
    label = "Record"
    # Columns that cannot be cleared through an update payload.
    required_fields: frozenset[str] = frozenset()

    def __init__(self, repository: BaseRepository, writer: ActivityWriter | None = None) -> None:
        self.repository = repository
        self.writer = writer or activity_writer

    def _load_for(self, session: Session, principal: Principal, record_id: str, action: Action) -> Any:
        ensure_permission(principal, self.resource, action)
        record = self.repository.get(session, record_id)
        return ensure_record_access(principal, record, resource=self.resource, action=action, label=self.label)

    def _list(
        self,
        session: Session,
        principal: Principal,
        filters: dict[str, Any],
        page: int,
        limit: int,
    ) -> tuple[list[Any], Pagination]:
        ensure_permission(principal, self.resource, Action.READ)
        rows, total = self.repository.list_scoped(
            session,
            principal,
            filters,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return rows, Pagination.build(page=page, limit=limit, total=total)

    def _apply_update(self, session: Session, record: Any, payload: dict[str, Any], principal: Principal) -> None:
        for field_name, value in payload.items():
            if value is None and field_name in self.required_fields:
                continue
            if field_name == "assigned_to" and value is not None:
                _ensure_assignee(session, value)
            if isinstance(value, datetime):
                value = to_utc(value)
            setattr(record, field_name, value)
        record.updated_by = principal.id

    def _create(
        self,
        session: Session,
        principal: Principal,
        record: Any,
        context: RequestContext | None,
    ) -> Any:
        session.add(record)
        session.commit()
        session.refresh(record)
        logger.info(
            "crm.record_created",
            extra={"resource": self.resource.value, "resource_id": record.id, "user_id": principal.id},
        )
        self.writer.record_change(
            session,
            activity_type=ActivityType.CREATE,
            resource_type=self.resource_type,
            resource_id=record.id,
            user_id=principal.id,
            after=snapshot_model(record),
            context=context,
        )
        return record

    def _update(
        self,
        session: Session,
        principal: Principal,
        record_id: str,
        payload: dict[str, Any],
        context: RequestContext | None,
    ) -> Any:
        record = self._load_for(session, principal, record_id, Action.UPDATE)
        before = snapshot_model(record)
        self._apply_update(session, record, payload, principal)
        session.commit()
        session.refresh(record)
        self.writer.record_change(
            session,
            activity_type=ActivityType.UPDATE,
            resource_type=self.resource_type,
            resource_id=record.id,
            user_id=principal.id,
            before=before,
            after=snapshot_model(record),
            context=context,
        )
        return record

    def _delete(
        self,
        session: Session,
        principal: Principal,
        record_id: str,
        context: RequestContext | None,
    ) -> None:
        record = self._load_for(session, principal, record_id, Action.DELETE)
        before = snapshot_model(record)
        session.delete(record)
        session.commit()
        logger.info(
            "crm.record_deleted",
            extra={"resource": self.resource.value, "resource_id": record_id, "user_id": principal.id},
        )
        self.writer.record_change(
            session,
            activity_type=ActivityType.DELETE,
            resource_type=self.resource_type,
            resource_id=record_id,
            user_id=principal.id,
            before=before,
            context=context,
        )


def _ensure_assignee(session: Session, user_id: str) -> None:
    exists = session.scalar(select(User.id).where(User.id == user_id, User.is_active.is_(True)))
    if exists is None:
        raise ValidationError.for_field("assigned_to", "Assigned user not found")


def _name_or_none(user: User | None) -> str | None:
    return user.name if user is not None else None


class CustomerService(ScopedRecordService):
    resource = Resource.CUSTOMERS
    resource_type = ResourceType.CUSTOMER
    label = "Customer"
    required_fields = frozenset({"name", "status", "tags", "value"})

    def __init__(self, writer: ActivityWriter | None = None) -> None:
        super().__init__(CustomerRepository(), writer)

    def list_customers(
        self,
        session: Session,
        principal: Principal,
        filters: dict[str, Any],
        page: int,
        limit: int,
    ) -> tuple[list[CustomerRead], Pagination]:
        rows, pagination = self._list(session, principal, filters, page, limit)
        return [self._to_read(item) for item in rows], pagination

    def get_customer(self, session: Session, principal: Principal, customer_id: str) -> CustomerRead:
        return self._to_read(self._load_for(session, principal, customer_id, Action.READ))

    def create_customer(
        self,
        session: Session,
        principal: Principal,
        dto: CustomerCreate,
        context: RequestContext | None = None,
    ) -> CustomerRead:
        ensure_permission(principal, self.resource, Action.CREATE)
        if dto.assigned_to is not None:
            _ensure_assignee(session, dto.assigned_to)

        customer = Customer(
            name=dto.name,
            email=str(dto.email) if dto.email is not None else None,
            phone=dto.phone,
            company=dto.company or dto.name,
            status=dto.status,
            tags=list(dto.tags),
            notes=dto.notes,
            value=dto.value,
            industry=dto.industry,
            source=dto.source,
            last_contact_date=to_utc(dto.last_contact_date) or utcnow(),
            owner_id=principal.id,
            team_id=principal.team_id,
            assigned_to=dto.assigned_to or principal.id,
            created_by=principal.id,
            updated_by=principal.id,
        )
        return self._to_read(self._create(session, principal, customer, context))

    def update_customer(
        self,
        session: Session,
        principal: Principal,
        customer_id: str,
        dto: CustomerUpdate,
        context: RequestContext | None = None,
    ) -> CustomerRead:
        payload = dto.model_dump(exclude_unset=True)
        if payload.get("email") is not None:
            payload["email"] = str(payload["email"])
        return self._to_read(self._update(session, principal, customer_id, payload, context))

    def delete_customer(
        self,
        session: Session,
        principal: Principal,
        customer_id: str,
        context: RequestContext | None = None,
    ) -> None:
        """Leads of the customer go with it through ON DELETE CASCADE."""
        self._delete(session, principal, customer_id, context)

    def _to_read(self, customer: Customer) -> CustomerRead:
        return CustomerRead.model_validate(
            {
                "id": customer.id,
                "name": customer.name,
                "email": customer.email,
                "phone": customer.phone,
                "company": customer.company,
                "status": customer.status,
                "tags": list(customer.tags or []),
                "notes": customer.notes,
                "value": customer.value,
                "industry": customer.industry,
                "source": customer.source,
                "last_contact_date": to_utc(customer.last_contact_date),
                "owner_id": customer.owner_id,
                "owner_name": _name_or_none(customer.owner),
                "team_id": customer.team_id,
                "team_name": customer.team.name if customer.team is not None else None,
                "assigned_to": customer.assigned_to,
                "assigned_user_name": _name_or_none(customer.assignee),
                "created_by": customer.created_by,
                "updated_by": customer.updated_by,
                "created_at": to_utc(customer.created_at),
                "updated_at": to_utc(customer.updated_at),
            }
        )


class LeadService(ScopedRecordService):
    resource = Resource.LEADS
    resource_type = ResourceType.LEAD
    label = "Lead"
    required_fields = frozenset({"title", "status", "priority", "value"})

    def __init__(self, writer: ActivityWriter | None = None) -> None:
        super().__init__(LeadRepository(), writer)

    def list_leads(
        self,
        session: Session,
        principal: Principal,
        filters: dict[str, Any],
        page: int,
        limit: int,
    ) -> tuple[list[LeadRead], Pagination]:
        rows, pagination = self._list(session, principal, filters, page, limit)
        return [self._to_read(item) for item in rows], pagination

    def list_for_customer(
        self,
        session: Session,
        principal: Principal,
        customer_id: str,
        filters: dict[str, Any],
    ) -> list[LeadRead]:
        ensure_permission(principal, self.resource, Action.READ)
        repository: LeadRepository = self.repository  # type: ignore[assignment]
        return [self._to_read(item) for item in repository.list_for_customer(session, principal, customer_id, filters)]

    def get_lead(self, session: Session, principal: Principal, lead_id: str) -> LeadRead:
        return self._to_read(self._load_for(session, principal, lead_id, Action.READ))

    def create_lead(
        self,
        session: Session,
        principal: Principal,
        dto: LeadCreate,
        context: RequestContext | None = None,
    ) -> LeadRead:
        ensure_permission(principal, self.resource, Action.CREATE)
        customer = session.get(Customer, dto.customer_id)
        if customer is None:
            raise ValidationError.for_field("customer_id", "Customer not found")
        ensure_record_access(principal, customer, resource=Resource.CUSTOMERS, action=Action.READ, label="Customer")
        if dto.assigned_to is not None:
            _ensure_assignee(session, dto.assigned_to)

        lead = Lead(
            title=dto.title,
            description=dto.description,
            customer_id=customer.id,
            status=dto.status,
            value=dto.value,
            expected_close_date=to_utc(dto.expected_close_date),
            priority=dto.priority,
            source=dto.source,
            owner_id=principal.id,
            team_id=principal.team_id,
            assigned_to=dto.assigned_to or principal.id,
            created_by=principal.id,
            updated_by=principal.id,
        )
        return self._to_read(self._create(session, principal, lead, context))

    def update_lead(
        self,
        session: Session,
        principal: Principal,
        lead_id: str,
        dto: LeadUpdate,
        context: RequestContext | None = None,
    ) -> LeadRead:
        return self._to_read(self._update(session, principal, lead_id, dto.model_dump(exclude_unset=True), context))

    def delete_lead(
        self,
        session: Session,
        principal: Principal,
        lead_id: str,
        context: RequestContext | None = None,
    ) -> None:
        self._delete(session, principal, lead_id, context)

    def _to_read(self, lead: Lead) -> LeadRead:
        customer = lead.customer
        return LeadRead.model_validate(
            {
                "id": lead.id,
                "title": lead.title,
                "description": lead.description,
                "customer_id": lead.customer_id,
                "customer_name": customer.name if customer is not None else None,
                "customer_company": customer.company if customer is not None else None,
                "status": lead.status,
                "value": lead.value,
                "expected_close_date": to_utc(lead.expected_close_date),
                "priority": lead.priority,
                "source": lead.source,
                "owner_id": lead.owner_id,
                "owner_name": _name_or_none(lead.owner),
                "team_id": lead.team_id,
                "team_name": lead.team.name if lead.team is not None else None,
                "assigned_to": lead.assigned_to,
                "assigned_user_name": _name_or_none(lead.assignee),
                "created_by": lead.created_by,
                "updated_by": lead.updated_by,
                "created_at": to_utc(lead.created_at),
                "updated_at": to_utc(lead.updated_at),
            }
        )
