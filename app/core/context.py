from __future__ import annotations

from contextvars import ContextVar, Token
from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def set_correlation_id(value: str | None) -> Token[str | None]:
    return correlation_id_var.set(value)


def reset_correlation_id(token: Token[str | None]) -> None:
    correlation_id_var.reset(token)


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


@dataclass
class RequestContext:
    """Per-request client metadata recorded alongside audit activities."""

    request_id: str
    correlation_id: str
    user_id: str | None
    ip_address: str | None
    user_agent: str | None


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    if request.client is not None:
        return request.client.host
    return None


def get_request_context(request: Request) -> RequestContext:
    context = getattr(request.state, "context", None)
    if isinstance(context, RequestContext):
        return context
    correlation_id = getattr(request.state, "correlation_id", None) or get_correlation_id() or ""
    return RequestContext(
        request_id=correlation_id,
        correlation_id=correlation_id,
        user_id=None,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = getattr(request.state, "correlation_id", None)
        request.state.context = RequestContext(
            request_id=correlation_id or "",
            correlation_id=correlation_id or "",
            user_id=None,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
        response = await call_next(request)
        response.headers["x-request-id"] = request.state.context.request_id
        return response
