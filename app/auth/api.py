from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.responses import ApiResponse, app_error_response
from app.auth.schemas import AuthSession, LoginRequest, LogoutRequest, RefreshTokenRequest, RegisterRequest, UserRead
from app.auth.service import AuthService
from app.core.auth import get_auth_service, get_current_principal, get_optional_principal
from app.core.context import get_request_context
from app.core.database import get_db
from app.core.errors import AppError
from app.platform.security.context import Principal

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=ApiResponse[AuthSession])
def login(
    request: Request,
    dto: LoginRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse[AuthSession] | JSONResponse:
    try:
        auth_session = auth_service.login(db, dto.email, dto.password, get_request_context(request))
        return ApiResponse[AuthSession](message="Login successful", data=auth_session)
    except AppError as exc:
        return app_error_response(request, exc)


@router.post("/register", response_model=ApiResponse[AuthSession], status_code=status.HTTP_201_CREATED)
def register(
    request: Request,
    dto: RegisterRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse[AuthSession] | JSONResponse:
    try:
        auth_session = auth_service.register(db, dto, get_request_context(request))
        return ApiResponse[AuthSession](message="Registration successful", data=auth_session)
    except AppError as exc:
        return app_error_response(request, exc)


@router.post("/refresh-token", response_model=ApiResponse[AuthSession])
def refresh_token(
    request: Request,
    dto: RefreshTokenRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse[AuthSession] | JSONResponse:
    try:
        auth_session = auth_service.refresh(db, dto.refresh_token)
        return ApiResponse[AuthSession](message="Token refreshed successfully", data=auth_session)
    except AppError as exc:
        return app_error_response(request, exc)


@router.post("/logout", response_model=ApiResponse[None])
def logout(
    request: Request,
    dto: LogoutRequest | None = None,
    db: Session = Depends(get_db),
    principal: Principal | None = Depends(get_optional_principal),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse[None]:
    auth_service.logout(db, dto.refresh_token if dto else None, principal, get_request_context(request))
    return ApiResponse[None](message="Logout successful")


@router.get("/profile", response_model=ApiResponse[UserRead])
def profile(
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse[UserRead] | JSONResponse:
    try:
        return ApiResponse[UserRead](message="Profile retrieved", data=auth_service.get_profile(db, principal))
    except AppError as exc:
        return app_error_response(request, exc)
