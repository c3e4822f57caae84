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

stage_transitions_total = Counter(
    "stage_transitions_total",
    "Total stage transitions by stage and outcome",
    ["stage", "outcome"],
)

stage_transition_duration_seconds = Histogram(
    "stage_transition_duration_seconds",
    "Stage transition duration in seconds",
    ["stage"],
)

stage_documents_uploaded_total = Counter(
    "stage_documents_uploaded_total",
    "Total documents uploaded inside stage transitions",
    ["stage"],
)

vendor_configuration_errors_total = Counter(
    "vendor_configuration_errors_total",
    "Missing vendor tag configuration lookups by kind",
    ["kind", "tag"],
)

aggregate_cache_hits_total = Counter(
    "aggregate_cache_hits_total",
    "Aggregation cache hits by aggregate",
    ["aggregate"],
)

aggregate_cache_misses_total = Counter(
    "aggregate_cache_misses_total",
    "Aggregation cache misses by aggregate",
    ["aggregate"],
)

aggregate_cache_errors_total = Counter(
    "aggregate_cache_errors_total",
    "Aggregation cache backend errors by operation",
    ["operation"],
)


_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    return _INT_RE.sub("/{id}", path)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _PATH_PARAM_RE.sub("{id}", path_format)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_transition(stage: str, outcome: str, duration: float) -> None:
    stage_transitions_total.labels(stage=stage, outcome=outcome).inc()
    stage_transition_duration_seconds.labels(stage=stage).observe(duration)


def observe_documents_uploaded(stage: str, count: int) -> None:
    if count > 0:
        stage_documents_uploaded_total.labels(stage=stage).inc(count)


def observe_configuration_error(kind: str, tag: str) -> None:
    vendor_configuration_errors_total.labels(kind=kind, tag=tag).inc()


def observe_cache_hit(aggregate: str) -> None:
    aggregate_cache_hits_total.labels(aggregate=aggregate).inc()


def observe_cache_miss(aggregate: str) -> None:
    aggregate_cache_misses_total.labels(aggregate=aggregate).inc()


def observe_cache_error(operation: str) -> None:
    aggregate_cache_errors_total.labels(operation=operation).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
