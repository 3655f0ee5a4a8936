"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Reservation metrics
reservation_attempts = Counter(
    'reservation_attempts_total',
    'Total reservation create/update attempts',
    ['operation', 'status']  # success, conflict, quota, unavailable, invalid, error
)

reservation_latency = Histogram(
    'reservation_latency_seconds',
    'Latency of the atomic booking unit',
    ['operation'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

lifecycle_transitions = Counter(
    'reservation_transitions_total',
    'Reservation lifecycle transitions',
    ['from_status', 'to_status']
)

# Store metrics
store_retries = Counter(
    'store_retries_total',
    'Optimistic concurrency retries caused by version conflicts',
    ['operation']
)

store_failures = Counter(
    'store_failures_total',
    'Store failures surfaced to callers',
    ['operation']
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

# HTTP metrics
request_latency = Histogram(
    'http_request_latency_seconds',
    'HTTP request latency',
    ['method', 'status_code'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)


def metrics_endpoint() -> Response:
    """Prometheus scrape endpoint body."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_reservation_attempt(operation: str, status: str):
    """Record reservation attempt. Status: success, conflict, quota, unavailable, invalid, error"""
    reservation_attempts.labels(operation=operation, status=status).inc()


def record_transition(from_status: str, to_status: str):
    lifecycle_transitions.labels(from_status=from_status, to_status=to_status).inc()


def record_store_retry(operation: str):
    store_retries.labels(operation=operation).inc()


def record_store_failure(operation: str):
    store_failures.labels(operation=operation).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
