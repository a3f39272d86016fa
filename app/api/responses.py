from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Generic, TypeVar

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.config import get_settings
from app.core.context import get_correlation_id
from app.core.errors import AppError

T = TypeVar("T")


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> Pagination:
        return cls(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if limit else 0)


class FieldError(BaseModel):
    field: str
    message: str


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    message: str | None = None
    data: T | None = None
    pagination: Pagination | None = None
    errors: list[FieldError] | None = None


@dataclass
class ErrorEnvelope:
    success: bool
    message: str
    code: str
    errors: list[dict[str, Any]] | None
    correlation_id: str | None


def _resolve_correlation_id(request: Request) -> str | None:
    return get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None) or None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    errors: list[dict[str, Any]] | None = None,
    details: Any = None,
) -> JSONResponse:
    payload: dict[str, Any] = asdict(
        ErrorEnvelope(
            success=False,
            message=message,
            code=code,
            errors=errors,
            correlation_id=_resolve_correlation_id(request),
        )
    )
    if details is not None and not get_settings().is_production:
        payload["details"] = details
    return JSONResponse(status_code=status_code, content=payload)


def app_error_response(request: Request, exc: AppError) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        errors=exc.errors,
    )
