from app.platform.security.context import Principal
from app.platform.security.policies import ROLE_PERMISSIONS, Action, Resource, Role, allowed_actions, has_permission
from app.platform.security.repository import BaseRepository
from app.platform.security.rls import (
    ScopeFilter,
    apply_scope_filter,
    can_access_record,
    ensure_permission,
    ensure_record_access,
    scope_filter,
)

__all__ = [
    "Principal",
    "ROLE_PERMISSIONS",
    "Action",
    "Resource",
    "Role",
    "allowed_actions",
    "has_permission",
    "BaseRepository",
    "ScopeFilter",
    "apply_scope_filter",
    "can_access_record",
    "ensure_permission",
    "ensure_record_access",
    "scope_filter",
]
