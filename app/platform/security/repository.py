from __future__ import annotations

from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from app.platform.security.context import Principal
from app.platform.security.rls import apply_scope_filter


class BaseRepository:
    """Query helpers for scoped resources.

    Subclasses set ``model`` and ``search_columns``; every list query goes
    through ``apply_scope_query`` before caller filters are added.
    """

    model: Any = None
    search_columns: tuple[str, ...] = ()
    filter_columns: tuple[str, ...] = ()

    def apply_scope_query(self, query: Select[Any], principal: Principal) -> Select[Any]:
        return apply_scope_filter(query, self.model, principal)

    def apply_filters(self, query: Select[Any], filters: dict[str, Any]) -> Select[Any]:
        for name in self.filter_columns:
            value = filters.get(name)
            if value not in (None, ""):
                query = query.where(getattr(self.model, name) == value)

        search = filters.get("search")
        if search and self.search_columns:
            pattern = f"%{search}%"
            query = query.where(or_(*(getattr(self.model, name).ilike(pattern) for name in self.search_columns)))
        return query

    def get(self, session: Session, record_id: str) -> Any:
        return session.get(self.model, record_id)

    def list_scoped(
        self,
        session: Session,
        principal: Principal,
        filters: dict[str, Any],
        *,
        offset: int | None = None,
        limit: int | None = None,
    ) -> tuple[list[Any], int]:
        stmt = self.apply_filters(self.apply_scope_query(select(self.model), principal), filters)
        total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0

        stmt = stmt.order_by(self.model.updated_at.desc(), self.model.id)
        if offset is not None:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(session.scalars(stmt).all()), int(total)
