from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.responses import ApiResponse, app_error_response
from app.auth.service import AuthService
from app.core.auth import get_auth_service, get_current_principal
from app.core.context import get_request_context
from app.core.database import get_db
from app.core.errors import AppError
from app.platform.security.context import Principal
from app.users.schemas import RoleName, TeamCreate, TeamRead, UserListItem, UserUpdate
from app.users.service import UserAdminService

users_router = APIRouter(prefix="/users", tags=["users"])
teams_router = APIRouter(prefix="/teams", tags=["teams"])


def get_user_admin_service(auth_service: AuthService = Depends(get_auth_service)) -> UserAdminService:
    return UserAdminService(auth_service)


@users_router.get("", response_model=ApiResponse[list[UserListItem]])
def list_users(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    role: RoleName | None = Query(default=None),
    team_id: str | None = Query(default=None),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    service: UserAdminService = Depends(get_user_admin_service),
) -> ApiResponse[list[UserListItem]] | JSONResponse:
    try:
        rows, pagination = service.list_users(
            db,
            principal,
            filters={"role": role, "team_id": team_id, "search": search},
            page=page,
            limit=limit,
        )
        return ApiResponse[list[UserListItem]](data=rows, pagination=pagination)
    except AppError as exc:
        return app_error_response(request, exc)


@users_router.get("/{user_id}", response_model=ApiResponse[UserListItem])
def get_user(
    request: Request,
    user_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    service: UserAdminService = Depends(get_user_admin_service),
) -> ApiResponse[UserListItem] | JSONResponse:
    try:
        return ApiResponse[UserListItem](data=service.get_user(db, principal, user_id))
    except AppError as exc:
        return app_error_response(request, exc)


@users_router.patch("/{user_id}", response_model=ApiResponse[UserListItem])
def update_user(
    request: Request,
    user_id: str,
    dto: UserUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    service: UserAdminService = Depends(get_user_admin_service),
) -> ApiResponse[UserListItem] | JSONResponse:
    try:
        user = service.update_user(db, principal, user_id, dto, get_request_context(request))
        return ApiResponse[UserListItem](message="User updated successfully", data=user)
    except AppError as exc:
        return app_error_response(request, exc)


@users_router.delete("/{user_id}", response_model=ApiResponse[None])
def deactivate_user(
    request: Request,
    user_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    service: UserAdminService = Depends(get_user_admin_service),
) -> ApiResponse[None] | JSONResponse:
    try:
        service.deactivate_user(db, principal, user_id, get_request_context(request))
        return ApiResponse[None](message="User deactivated successfully")
    except AppError as exc:
        return app_error_response(request, exc)


@teams_router.get("", response_model=ApiResponse[list[TeamRead]])
def list_teams(
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    service: UserAdminService = Depends(get_user_admin_service),
) -> ApiResponse[list[TeamRead]] | JSONResponse:
    try:
        return ApiResponse[list[TeamRead]](data=service.list_teams(db, principal))
    except AppError as exc:
        return app_error_response(request, exc)


@teams_router.post("", response_model=ApiResponse[TeamRead], status_code=status.HTTP_201_CREATED)
def create_team(
    request: Request,
    dto: TeamCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    service: UserAdminService = Depends(get_user_admin_service),
) -> ApiResponse[TeamRead] | JSONResponse:
    try:
        team = service.create_team(db, principal, dto, get_request_context(request))
        return ApiResponse[TeamRead](message="Team created successfully", data=team)
    except AppError as exc:
        return app_error_response(request, exc)
