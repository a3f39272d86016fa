from app.platform.security import Action, Principal, Resource, Role, can_access_record, has_permission, scope_filter

__all__ = [
    "Action",
    "Principal",
    "Resource",
    "Role",
    "can_access_record",
    "has_permission",
    "scope_filter",
]
