from __future__ import annotations

from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping

if TYPE_CHECKING:
    from app.platform.security.context import Principal


class Role(StrEnum):
    ADMIN = "admin"
    MANAGER = "manager"
    SALES_REP = "sales_rep"


class Resource(StrEnum):
    CUSTOMERS = "customers"
    LEADS = "leads"
    USERS = "users"
    TEAMS = "teams"
    ACTIVITIES = "activities"
    REPORTS = "reports"


class Action(StrEnum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    EXPORT = "export"


_CRUD = frozenset({Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE})
_CRU = frozenset({Action.CREATE, Action.READ, Action.UPDATE})
_READ = frozenset({Action.READ})
_READ_EXPORT = frozenset({Action.READ, Action.EXPORT})


ROLE_PERMISSIONS: Mapping[Role, Mapping[Resource, frozenset[Action]]] = MappingProxyType(
    {
        Role.ADMIN: MappingProxyType(
            {
                Resource.CUSTOMERS: _CRUD,
                Resource.LEADS: _CRUD,
                Resource.USERS: _CRUD,
                Resource.TEAMS: _CRUD,
                Resource.ACTIVITIES: _CRUD,
                Resource.REPORTS: _READ_EXPORT,
            }
        ),
        Role.MANAGER: MappingProxyType(
            {
                Resource.CUSTOMERS: _CRUD,
                Resource.LEADS: _CRUD,
                Resource.USERS: _READ,
                Resource.TEAMS: frozenset({Action.READ, Action.UPDATE}),
                Resource.ACTIVITIES: _CRUD,
                Resource.REPORTS: _READ_EXPORT,
            }
        ),
        Role.SALES_REP: MappingProxyType(
            {
                Resource.CUSTOMERS: _CRU,
                Resource.LEADS: _CRU,
                Resource.USERS: _READ,
                Resource.TEAMS: _READ,
                Resource.ACTIVITIES: _CRU,
                Resource.REPORTS: _READ,
            }
        ),
    }
)


def _coerce(enum_type: type[StrEnum], value: object) -> StrEnum | None:
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(str(value))
    except ValueError:
        return None


def allowed_actions(role: Role | str, resource: Resource | str) -> frozenset[Action]:
    role_value = _coerce(Role, role)
    resource_value = _coerce(Resource, resource)
    if role_value is None or resource_value is None:
        return frozenset()
    return ROLE_PERMISSIONS[role_value].get(resource_value, frozenset())


def has_permission(principal: Principal | None, resource: Resource | str, action: Action | str) -> bool:
    """Pure matrix lookup. Unknown roles, resources or actions are denied."""

    if principal is None:
        return False
    action_value = _coerce(Action, action)
    if action_value is None:
        return False
    return action_value in allowed_actions(principal.role, resource)
