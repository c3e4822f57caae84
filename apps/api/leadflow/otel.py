from __future__ import annotations

from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from leadflow.core.config import Settings

SERVICE_NAME = "leadflow-api"

_provider: TracerProvider | None = None
_console_attached = False


def _tracer_provider(environment: str = "local") -> TracerProvider:
    """The process-wide provider; OpenTelemetry only honours the first one set."""
    global _provider
    if _provider is None:
        _provider = TracerProvider(
            resource=Resource.create({"service.name": SERVICE_NAME, "deployment.environment": environment})
        )
        trace.set_tracer_provider(_provider)
    return _provider


def setup_otel(settings: Settings) -> TracerProvider | None:
    global _console_attached
    if not settings.otel_enabled:
        return None
    provider = _tracer_provider(settings.app_env)
    if settings.otel_console_exporter and not _console_attached:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        _console_attached = True
    return provider


def setup_inmemory_otel() -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    _tracer_provider().add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def server_request_hook(span: Any, scope: dict[str, Any]) -> None:
    """Tag the FastAPI server span with the caller's correlation id, if sent."""
    if span is None or not span.is_recording():
        return
    for name, value in scope.get("headers", []):
        if name == b"x-correlation-id":
            span.set_attribute("correlation_id", value.decode("latin-1"))
            return
