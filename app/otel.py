from __future__ import annotations

from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from app.core.config import Settings
from app.middleware.correlation_id import CORRELATION_HEADER

_provider: TracerProvider | None = None
_exporters_installed = False


def _tracer_provider(service_name: str, environment: str) -> TracerProvider:
    global _provider
    if _provider is None:
        _provider = TracerProvider(
            resource=Resource.create(
                {
                    "service.name": service_name,
                    "service.version": "0.1.0",
                    "deployment.environment": environment,
                }
            )
        )
        trace.set_tracer_provider(_provider)
    return _provider


def setup_otel(settings: Settings) -> TracerProvider | None:
    """Install the global tracer provider and its exporters, once per process."""
    global _exporters_installed

    if not settings.otel_enabled:
        return None

    provider = _tracer_provider(settings.otel_service_name, settings.app_env)
    if _exporters_installed:
        return provider

    if settings.otel_exporter_otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint))
        )
    if settings.otel_console_exporter:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    _exporters_installed = True
    return provider


def setup_inmemory_otel(service_name: str = "crm-api") -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    _tracer_provider(service_name, "test").add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


def get_fastapi_server_request_hook():
    header_name = CORRELATION_HEADER.encode("latin-1")

    def server_request_hook(span, scope: dict[str, Any]) -> None:  # type: ignore[no-untyped-def]
        if span is None or not span.is_recording():
            return
        headers = dict(scope.get("headers", []))
        if headers.get(header_name):
            span.set_attribute("correlation_id", headers[header_name].decode("latin-1"))
        if headers.get(b"user-agent"):
            span.set_attribute("http.user_agent", headers[b"user-agent"].decode("utf-8", errors="replace"))

    return server_request_hook
