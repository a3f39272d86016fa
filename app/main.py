from contextlib import asynccontextmanager
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from app.api.responses import app_error_response, error_response
from app.api.routes import router as api_router
from app.core.config import get_settings
from app.core.context import RequestContextMiddleware
from app.core.database import Base, engine
from app.core.errors import AppError, InternalError, ValidationError
from app.logging import configure_logging
from app.middleware.correlation_id import CorrelationIdMiddleware
from app.middleware.request_logging import RequestLoggingMiddleware
from app.otel import get_fastapi_server_request_hook, setup_otel

from app import models  # noqa: F401


configure_logging()
logger = logging.getLogger("app.lifecycle")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.db_auto_create:
        Base.metadata.create_all(bind=engine)
    logger.info("system.started")
    yield


def _field_name(loc: tuple) -> str:
    # Drop the "body"/"query" prefix FastAPI puts in front of the field path.
    parts = [str(part) for part in loc[1:]] if len(loc) > 1 else [str(part) for part in loc]
    return ".".join(parts)


async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    return app_error_response(request, exc)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [{"field": _field_name(tuple(item.get("loc", ()))), "message": item.get("msg", "")} for item in exc.errors()]
    return error_response(
        request,
        status_code=ValidationError.status_code,
        code=ValidationError.code,
        message="Validation errors",
        errors=errors,
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("http.unhandled_error", extra={"path": request.url.path, "error": str(exc)})
    internal = InternalError()
    return error_response(
        request,
        status_code=internal.status_code,
        code=internal.code,
        message=internal.message,
        details={"error": str(exc), "stack": traceback.format_exc()},
    )


settings = get_settings()

app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_exception_handler(AppError, handle_app_error)
app.add_exception_handler(RequestValidationError, handle_validation_error)
app.add_exception_handler(Exception, handle_unexpected_error)
app.include_router(api_router)

setup_otel(settings)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
