"""Prometheus metrics for the application."""

import time

from prometheus_client import Counter, Histogram, Info, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# --- Metrics ---

APP_INFO = Info("app", "Website rubric evaluator application info")
APP_INFO.info({"version": "1.0.0", "name": "site_rubric_evaluator"})

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 120],
)

LLM_CALLS = Counter(
    "llm_calls_total",
    "Model endpoint calls by outcome",
    ["outcome"],
)

LLM_CALL_DURATION = Histogram(
    "llm_call_duration_seconds",
    "Model endpoint round-trip time in seconds",
    buckets=[0.25, 0.5, 1, 2.5, 5, 10, 20, 30, 60],
)

CRITERION_RESULTS = Counter(
    "criterion_evaluations_total",
    "Per-criterion evaluation results by terminal status",
    ["status"],
)

LLM_RETRIES = Counter(
    "llm_retries_total",
    "Retries scheduled after a failed model call",
)


# --- Middleware ---

# Only known routes are labelled verbatim; everything else collapses to one label
_KNOWN_PATHS = ("/api/evaluate", "/api/scrape", "/health")


def _normalize_path(path: str) -> str:
    """Collapse unknown paths to avoid high label cardinality."""
    return path if path in _KNOWN_PATHS else "other"


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect HTTP request metrics for Prometheus."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = _normalize_path(request.url.path)

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start

        REQUEST_COUNT.labels(method=method, path=path, status=response.status_code).inc()
        REQUEST_DURATION.labels(method=method, path=path).observe(duration)

        return response


def metrics_response() -> Response:
    """Generate Prometheus /metrics response."""
    return Response(
        content=generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
