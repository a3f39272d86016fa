from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session
from starlette.requests import Request

from app.auth.service import AuthService
from app.core.config import get_settings
from app.core.context import RequestContext
from app.core.database import get_db
from app.core.errors import TokenExpired, TokenInvalid
from app.platform.security.context import Principal


def get_auth_service() -> AuthService:
    return AuthService(get_settings())


def bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _bind_user(request: Request, principal: Principal) -> None:
    context = getattr(request.state, "context", None)
    if isinstance(context, RequestContext):
        context.user_id = principal.id


def get_current_principal(
    request: Request,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> Principal:
    """Resolve the bearer token; raises ``TokenExpired`` or ``TokenInvalid``."""

    principal = auth_service.authenticate_request(db, bearer_token(request))
    _bind_user(request, principal)
    return principal


def get_optional_principal(
    request: Request,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> Principal | None:
    token = bearer_token(request)
    if token is None:
        return None
    try:
        principal = auth_service.authenticate_request(db, token)
    except (TokenExpired, TokenInvalid):
        return None
    _bind_user(request, principal)
    return principal
