from collections.abc import Callable

from fastapi import Depends

from app.core.auth import get_current_principal
from app.core.errors import Forbidden
from app.platform.security.context import Principal
from app.platform.security.policies import Action, Resource, Role
from app.platform.security.rls import ensure_permission


def require_permission(resource: Resource, action: Action) -> Callable[[Principal], Principal]:
    def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        ensure_permission(principal, resource, action)
        return principal

    return checker


def require_roles(*roles: Role) -> Callable[[Principal], Principal]:
    def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise Forbidden(f"Requires role: {', '.join(role.value for role in roles)}")
        return principal

    return checker
