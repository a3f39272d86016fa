from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from app.crm.models import Customer, Lead
from app.platform.security.context import Principal
from app.platform.security.repository import BaseRepository


class CustomerRepository(BaseRepository):
    model = Customer
    search_columns = ("name", "email", "company")
    filter_columns = ("status", "industry", "source")


class LeadRepository(BaseRepository):
    """Leads carry their own owner/team columns; the parent customer's scope is not consulted."""

    model = Lead
    search_columns = ("title", "description")
    filter_columns = ("status", "priority", "customer_id")

    def list_for_customer(
        self,
        session: Session,
        principal: Principal,
        customer_id: str,
        filters: dict[str, Any],
    ) -> list[Lead]:
        rows, _ = self.list_scoped(session, principal, {**filters, "customer_id": customer_id, "search": None})
        return rows
