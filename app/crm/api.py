from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.responses import ApiResponse, app_error_response
from app.core.auth import get_current_principal
from app.core.context import get_request_context
from app.core.database import get_db
from app.core.errors import AppError
from app.crm.schemas import (
    CustomerCreate,
    CustomerRead,
    CustomerUpdate,
    CustomerStatus,
    LeadCreate,
    LeadPriority,
    LeadRead,
    LeadStatus,
    LeadUpdate,
)
from app.crm.service import CustomerService, LeadService
from app.platform.security.context import Principal

customers_router = APIRouter(prefix="/customers", tags=["customers"])
leads_router = APIRouter(prefix="/leads", tags=["leads"])

customer_service = CustomerService()
lead_service = LeadService()


@customers_router.get("", response_model=ApiResponse[list[CustomerRead]])
def list_customers(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: str | None = Query(default=None),
    status_filter: CustomerStatus | None = Query(default=None, alias="status"),
    industry: str | None = Query(default=None),
    source: str | None = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[list[CustomerRead]] | JSONResponse:
    try:
        rows, pagination = customer_service.list_customers(
            db,
            principal,
            filters={"search": search, "status": status_filter, "industry": industry, "source": source},
            page=page,
            limit=limit,
        )
        return ApiResponse[list[CustomerRead]](data=rows, pagination=pagination)
    except AppError as exc:
        return app_error_response(request, exc)


@customers_router.post("", response_model=ApiResponse[CustomerRead], status_code=status.HTTP_201_CREATED)
def create_customer(
    request: Request,
    dto: CustomerCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[CustomerRead] | JSONResponse:
    try:
        customer = customer_service.create_customer(db, principal, dto, get_request_context(request))
        return ApiResponse[CustomerRead](message="Customer created successfully", data=customer)
    except AppError as exc:
        return app_error_response(request, exc)


@customers_router.get("/{customer_id}", response_model=ApiResponse[CustomerRead])
def get_customer(
    request: Request,
    customer_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[CustomerRead] | JSONResponse:
    try:
        return ApiResponse[CustomerRead](data=customer_service.get_customer(db, principal, customer_id))
    except AppError as exc:
        return app_error_response(request, exc)


@customers_router.put("/{customer_id}", response_model=ApiResponse[CustomerRead])
def update_customer(
    request: Request,
    customer_id: str,
    dto: CustomerUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[CustomerRead] | JSONResponse:
    try:
        customer = customer_service.update_customer(db, principal, customer_id, dto, get_request_context(request))
        return ApiResponse[CustomerRead](message="Customer updated successfully", data=customer)
    except AppError as exc:
        return app_error_response(request, exc)


@customers_router.delete("/{customer_id}", response_model=ApiResponse[None])
def delete_customer(
    request: Request,
    customer_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[None] | JSONResponse:
    try:
        customer_service.delete_customer(db, principal, customer_id, get_request_context(request))
        return ApiResponse[None](message="Customer deleted successfully")
    except AppError as exc:
        return app_error_response(request, exc)


@leads_router.get("", response_model=ApiResponse[list[LeadRead]])
def list_leads(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: str | None = Query(default=None),
    status_filter: LeadStatus | None = Query(default=None, alias="status"),
    priority: LeadPriority | None = Query(default=None),
    customer_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[list[LeadRead]] | JSONResponse:
    try:
        rows, pagination = lead_service.list_leads(
            db,
            principal,
            filters={"search": search, "status": status_filter, "priority": priority, "customer_id": customer_id},
            page=page,
            limit=limit,
        )
        return ApiResponse[list[LeadRead]](data=rows, pagination=pagination)
    except AppError as exc:
        return app_error_response(request, exc)


@leads_router.post("", response_model=ApiResponse[LeadRead], status_code=status.HTTP_201_CREATED)
def create_lead(
    request: Request,
    dto: LeadCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[LeadRead] | JSONResponse:
    try:
        lead = lead_service.create_lead(db, principal, dto, get_request_context(request))
        return ApiResponse[LeadRead](message="Lead created successfully", data=lead)
    except AppError as exc:
        return app_error_response(request, exc)


# Declared before "/{lead_id}" so the literal segment wins.
@leads_router.get("/customer/{customer_id}", response_model=ApiResponse[list[LeadRead]])
def list_customer_leads(
    request: Request,
    customer_id: str,
    status_filter: LeadStatus | None = Query(default=None, alias="status"),
    priority: LeadPriority | None = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[list[LeadRead]] | JSONResponse:
    try:
        rows = lead_service.list_for_customer(
            db,
            principal,
            customer_id,
            filters={"status": status_filter, "priority": priority},
        )
        return ApiResponse[list[LeadRead]](data=rows)
    except AppError as exc:
        return app_error_response(request, exc)


@leads_router.get("/{lead_id}", response_model=ApiResponse[LeadRead])
def get_lead(
    request: Request,
    lead_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[LeadRead] | JSONResponse:
    try:
        return ApiResponse[LeadRead](data=lead_service.get_lead(db, principal, lead_id))
    except AppError as exc:
        return app_error_response(request, exc)


@leads_router.put("/{lead_id}", response_model=ApiResponse[LeadRead])
def update_lead(
    request: Request,
    lead_id: str,
    dto: LeadUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[LeadRead] | JSONResponse:
    try:
        lead = lead_service.update_lead(db, principal, lead_id, dto, get_request_context(request))
        return ApiResponse[LeadRead](message="Lead updated successfully", data=lead)
    except AppError as exc:
        return app_error_response(request, exc)


@leads_router.delete("/{lead_id}", response_model=ApiResponse[None])
def delete_lead(
    request: Request,
    lead_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> ApiResponse[None] | JSONResponse:
    try:
        lead_service.delete_lead(db, principal, lead_id, get_request_context(request))
        return ApiResponse[None](message="Lead deleted successfully")
    except AppError as exc:
        return app_error_response(request, exc)
