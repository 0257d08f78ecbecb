"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total booking attempts',
    ['status']  # success, conflict, not_found, invalid
)

booking_latency = Histogram(
    'booking_latency_seconds',
    'Booking creation latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

booking_cancellations = Counter(
    'booking_cancellations_total',
    'Cancelled bookings',
    ['refundable']  # true, false
)

# Payment webhook metrics
webhook_results = Counter(
    'payment_webhook_results_total',
    'Payment outcomes received, by reconcile result',
    ['result']  # applied, duplicate_delivery, stale, not_found, duplicate_key
)

# Expiry sweep metrics
bookings_expired = Counter(
    'bookings_expired_total',
    'Pending bookings expired by the sweeper'
)

expiry_sweep_failures = Counter(
    'expiry_sweep_failures_total',
    'Candidates the sweeper failed to expire'
)

expiry_sweep_latency = Histogram(
    'expiry_sweep_latency_seconds',
    'Duration of one expiry sweep',
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0]
)

# Database metrics
transaction_rollbacks = Counter(
    'db_transaction_rollbacks_total',
    'Transactions rolled back',
    ['reason']  # exception class name
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


def record_booking_attempt(status: str):
    """Record booking attempt. Status: success, conflict, not_found, invalid"""
    booking_attempts.labels(status=status).inc()


def record_cancellation(refundable: bool):
    booking_cancellations.labels(refundable=str(refundable).lower()).inc()


def record_webhook_result(result: str):
    webhook_results.labels(result=result).inc()


def record_expired(count: int = 1):
    bookings_expired.inc(count)


def record_sweep_failure():
    expiry_sweep_failures.inc()


def record_rollback(reason: str):
    transaction_rollbacks.labels(reason=reason).inc()
