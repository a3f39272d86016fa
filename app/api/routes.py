from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from app.api.activities import router as activities_router
from app.api.responses import ApiResponse, app_error_response
from app.auth.api import router as auth_router
from app.core.config import get_settings
from app.core.errors import NotFound
from app.core.rbac import require_roles
from app.crm.api import customers_router, leads_router
from app.metrics import generate_metrics_payload, metrics_content_type
from app.platform.security.context import Principal
from app.platform.security.policies import Role
from app.users.api import teams_router, users_router

router = APIRouter()
router.include_router(auth_router)
router.include_router(customers_router)
router.include_router(leads_router)
router.include_router(users_router)
router.include_router(teams_router)
router.include_router(activities_router)


@router.get("/health", tags=["system"], response_model=ApiResponse[dict[str, str]])
def health() -> ApiResponse[dict[str, str]]:
    settings = get_settings()
    return ApiResponse[dict[str, str]](
        message=f"{settings.app_name} is healthy",
        data={"service": settings.app_name, "environment": settings.app_env},
    )


@router.get("/metrics", tags=["system"])
def metrics(request: Request, principal: Principal = Depends(require_roles(Role.ADMIN))) -> Response:
    if not get_settings().metrics_enabled:
        return app_error_response(request, NotFound())
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
