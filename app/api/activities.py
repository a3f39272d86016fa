from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from app.api.responses import ApiResponse, Pagination, app_error_response
from app.core.auth import get_current_principal
from app.core.database import get_db
from app.core.errors import AppError
from app.models.activity import ActivityType, ResourceType
from app.platform.security.context import Principal
from app.platform.security.policies import Action, Resource
from app.platform.security.rls import ensure_permission
from app.services.audit import activity_writer

router = APIRouter(prefix="/activities", tags=["activities"])


class ActivityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    resource_type: str
    resource_id: str
    description: str
    changes: dict[str, Any] | None
    user_id: str
    ip_address: str | None
    user_agent: str | None
    created_at: datetime


class ActivitySummary(BaseModel):
    user_id: str
    days: int
    total: int
    by_type: dict[str, int]
    by_resource_type: dict[str, int]
    breakdown: list[dict[str, Any]]


@router.get("", response_model=ApiResponse[list[ActivityRead]])
def list_activities(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=100),
    user_id: str | None = Query(default=None),
    resource_type: ResourceType | None = Query(default=None),
    resource_id: str | None = Query(default=None),
    activity_type: ActivityType | None = Query(default=None, alias="type"),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[list[ActivityRead]] | JSONResponse:
    try:
        ensure_permission(principal, Resource.ACTIVITIES, Action.READ)
        filters = {
            # Non-admins only ever see their own trail.
            "user_id": user_id if principal.is_admin else principal.id,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "type": activity_type,
            "start_date": start_date,
            "end_date": end_date,
        }
        rows, total = activity_writer.list_activities(db, filters, page=page, limit=limit)
        return ApiResponse[list[ActivityRead]](
            data=[ActivityRead.model_validate(row) for row in rows],
            pagination=Pagination.build(page=page, limit=limit, total=total),
        )
    except AppError as exc:
        return app_error_response(request, exc)


@router.get("/summary", response_model=ApiResponse[ActivitySummary])
def activity_summary(
    request: Request,
    days: int = Query(default=30, ge=1, le=365),
    user_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[ActivitySummary] | JSONResponse:
    try:
        ensure_permission(principal, Resource.ACTIVITIES, Action.READ)
        target = user_id if principal.is_admin and user_id else principal.id
        summary = activity_writer.summarize_user(db, target, days=days)
        return ApiResponse[ActivitySummary](data=ActivitySummary.model_validate(summary))
    except AppError as exc:
        return app_error_response(request, exc)
