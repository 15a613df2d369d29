"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Reservation flow metrics
initiate_attempts = Counter(
    'reservation_initiate_total',
    'Reservation initiate attempts',
    ['status']  # initiated, conflict, gateway_error
)

confirm_attempts = Counter(
    'reservation_confirm_total',
    'Reservation confirm attempts',
    ['status']  # booked, replayed, conflict, paid_after_failure, gateway_failed, gateway_pending, amount_mismatch
)

paid_but_unbookable = Counter(
    'reservation_paid_but_unbookable_total',
    'Payments that succeeded after the slot was taken (refund required)'
)

confirm_latency = Histogram(
    'reservation_confirm_latency_seconds',
    'Confirm request latency',
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

# Locking metrics
lock_wait = Histogram(
    'resource_lock_wait_seconds',
    'Time spent waiting for resource locks',
    buckets=[0.0001, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

# Gateway metrics
gateway_calls = Counter(
    'payment_gateway_calls_total',
    'Payment gateway calls',
    ['operation', 'result']  # create_intent/get_status, ok/error/retry
)

expired_reservations = Counter(
    'reservation_expired_total',
    'Pending reservations failed by the expiry sweep'
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_initiate(status: str):
    """Record initiate outcome. Status: initiated, conflict, gateway_error"""
    initiate_attempts.labels(status=status).inc()


def record_confirm(status: str):
    """Record confirm outcome."""
    confirm_attempts.labels(status=status).inc()
    if status in ("conflict", "paid_after_failure"):
        paid_but_unbookable.inc()


def record_gateway_call(operation: str, result: str):
    gateway_calls.labels(operation=operation, result=result).inc()
