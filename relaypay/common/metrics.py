"""Prometheus metric definitions for the relay."""

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
tenant_resolutions_total = Counter(
    "tenant_resolutions_total",
    "Tenant handle resolutions by outcome (cache_hit, cache_fill, unauthorized)",
    ["outcome"],
)
credential_mutations_total = Counter(
    "credential_mutations_total",
    "Credential store mutations by operation and outcome",
    ["operation", "outcome"],
)
cached_handles = Gauge("cached_handles", "Live remote handles held in the client cache")
remote_calls_total = Counter(
    "remote_calls_total",
    "Calls to the payment platform by operation and outcome",
    ["operation", "outcome"],
)
remote_call_duration_seconds = Histogram(
    "remote_call_duration_seconds",
    "Payment platform call duration seconds",
    ["operation"],
)
checkout_sessions_total = Counter(
    "checkout_sessions_total",
    "Checkout session creation attempts by outcome",
    ["outcome"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
