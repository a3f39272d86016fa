from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

auth_login_attempts_total = Counter(
    "auth_login_attempts_total",
    "Login attempts by outcome",
    ["outcome"],
)

auth_lockouts_total = Counter(
    "auth_lockouts_total",
    "Accounts locked after repeated failed logins",
)

auth_token_refresh_total = Counter(
    "auth_token_refresh_total",
    "Refresh token rotations by outcome",
    ["outcome"],
)

scope_denied_total = Counter(
    "scope_denied_total",
    "Requests denied by the permission matrix or record scoping",
    ["resource", "action", "reason"],
)

audit_activities_written_total = Counter(
    "audit_activities_written_total",
    "Activity rows written",
    ["type", "resource_type"],
)

audit_write_failures_total = Counter(
    "audit_write_failures_total",
    "Activity writes that failed and were absorbed",
    ["type", "resource_type"],
)

audit_activities_purged_total = Counter(
    "audit_activities_purged_total",
    "Activity rows deleted by the retention sweep",
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_login_attempt(outcome: str) -> None:
    auth_login_attempts_total.labels(outcome=outcome).inc()


def observe_lockout() -> None:
    auth_lockouts_total.inc()


def observe_token_refresh(outcome: str) -> None:
    auth_token_refresh_total.labels(outcome=outcome).inc()


def observe_scope_denied(resource: str, action: str, reason: str) -> None:
    scope_denied_total.labels(resource=resource, action=action, reason=reason).inc()


def observe_activity_written(activity_type: str, resource_type: str) -> None:
    audit_activities_written_total.labels(type=activity_type, resource_type=resource_type).inc()


def observe_audit_write_failure(activity_type: str, resource_type: str) -> None:
    audit_write_failures_total.labels(type=activity_type, resource_type=resource_type).inc()


def observe_activities_purged(count: int) -> None:
    if count > 0:
        audit_activities_purged_total.inc(count)


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
