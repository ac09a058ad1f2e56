"""
Prometheus metrics for the geo messages API.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Retrieval outcome counter (mode, result)
- Residual filter row counter (outcome)

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

# HTTP request counter with labels for method, path, and status code
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# Request latency histogram in seconds
# Using default buckets: .005, .01, .025, .05, .075, .1, .25, .5, .75, 1.0, 2.5, 5.0, 7.5, 10.0
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# Retrieval outcomes
# mode: bbox, user
# result: ok, validation_error, store_unavailable
retrieval_requests_total = Counter(
    "retrieval_requests_total",
    "Total message retrieval outcomes",
    labelnames=["mode", "result"]
)

# Rows fetched by box queries, split by residual filter outcome
# outcome: kept, discarded
residual_filter_rows_total = Counter(
    "residual_filter_rows_total",
    "Rows evaluated by the residual coordinate filter",
    labelnames=["outcome"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    # Normalize path to avoid high-cardinality labels
    # (e.g., /messages?max_records=50 -> /messages)
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_retrieval_outcome(mode: str, result: str) -> None:
    """
    Record a retrieval outcome.

    Args:
        mode: "bbox" or "user"
        result: "ok", "validation_error" or "store_unavailable"
    """
    retrieval_requests_total.labels(mode=mode, result=result).inc()


def record_residual_filter(kept: int, discarded: int) -> None:
    """Record how many fetched rows the residual filter kept and dropped."""
    residual_filter_rows_total.labels(outcome="kept").inc(kept)
    residual_filter_rows_total.labels(outcome="discarded").inc(discarded)


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    """
    Get the content type for Prometheus metrics.

    Returns:
        Content type string for Prometheus exposition format
    """
    return CONTENT_TYPE_LATEST
