"""Row-level scoping for customers and leads.

Two predicates are derived from the principal's role:

* ``scope_filter`` restricts list queries. Managers see their team's rows and
  sales reps see the rows they own.
* ``can_access_record`` guards single-record reads and writes. It additionally
  lets non-admins reach a record that is assigned to them, so an assigned but
  not owned record is reachable by id while missing from that user's list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy.sql import Select

from app.core.errors import Forbidden, NotFound
from app.metrics import observe_scope_denied
from app.platform.security.context import Principal
from app.platform.security.policies import Action, Resource, Role, has_permission

logger = logging.getLogger("app.security")

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ScopeFilter:
    """Equality restriction on one column; ``column is None`` means unrestricted."""

    column: str | None = None
    value: str | None = None

    @property
    def is_unrestricted(self) -> bool:
        return self.column is None


def scope_filter(principal: Principal) -> ScopeFilter:
    if principal.role is Role.ADMIN:
        return ScopeFilter()
    if principal.role is Role.MANAGER:
        return ScopeFilter(column="team_id", value=principal.team_id)
    return ScopeFilter(column="owner_id", value=principal.id)


def apply_scope_filter(stmt: Select[Any], model: Any, principal: Principal) -> Select[Any]:
    spec = scope_filter(principal)
    if spec.is_unrestricted:
        return stmt
    column = getattr(model, spec.column)
    if spec.value is None:
        return stmt.where(column.is_(None))
    return stmt.where(column == spec.value)


def _field(record: Any, name: str) -> Any:
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def can_access_record(principal: Principal, record: Any) -> bool:
    if principal.role is Role.ADMIN:
        return True
    if principal.role is Role.MANAGER:
        return _field(record, "team_id") == principal.team_id
    return principal.id in {_field(record, "owner_id"), _field(record, "assigned_to")}


def ensure_permission(principal: Principal, resource: Resource, action: Action) -> None:
    if not has_permission(principal, resource, action):
        _emit_denied(principal, resource=resource, action=action, reason="permission")
        raise Forbidden(f"Insufficient permissions. Required: {action.value} on {resource.value}")


def ensure_record_access(
    principal: Principal,
    record: T | None,
    *,
    resource: Resource,
    action: Action,
    label: str,
) -> T:
    """Existence is checked before ownership: missing is 404, out of scope is 403."""

    if record is None:
        raise NotFound(f"{label} not found")
    if not can_access_record(principal, record):
        _emit_denied(principal, resource=resource, action=action, reason="record_scope")
        raise Forbidden("Access denied to this resource")
    return record


def _emit_denied(principal: Principal, *, resource: Resource, action: Action, reason: str) -> None:
    observe_scope_denied(resource=resource.value, action=action.value, reason=reason)
    logger.warning(
        "security.denied",
        extra={
            "user_id": principal.id,
            "role": principal.role.value,
            "resource": resource.value,
            "action": action.value,
            "outcome": reason,
        },
    )
