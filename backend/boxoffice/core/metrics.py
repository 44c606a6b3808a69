"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Checkout metrics
checkout_attempts = Counter(
    'checkout_attempts_total',
    'Checkout completion attempts',
    ['outcome']  # completed, replayed, rejected, conflict, error
)

order_materialization_latency = Histogram(
    'order_materialization_seconds',
    'Time spent materializing an order inside the checkout transaction',
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

inventory_conflicts = Counter(
    'inventory_conflicts_total',
    'Checkouts aborted because tickets or seats ran out',
    ['kind']  # tickets, seats
)

cart_operations = Counter(
    'cart_operations_total',
    'Cart mutations',
    ['operation']  # add, remove, update, clear, discount
)

# Background work
notification_jobs = Counter(
    'notification_jobs_total',
    'Fire-and-forget notification jobs',
    ['kind', 'result']  # email/audit, sent/failed/dropped
)

sweeper_transitions = Counter(
    'sweeper_transitions_total',
    'Rows moved by the TTL sweeper',
    ['entity']  # checkout, guest_cart, reservation, guest_order
)

# Redis guard
redis_guard_errors = Counter(
    'redis_guard_errors_total',
    'Redis errors while acquiring the checkout guard (guard fails open)'
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


def record_checkout(outcome: str):
    """Record checkout completion outcome."""
    checkout_attempts.labels(outcome=outcome).inc()


def record_inventory_conflict(kind: str):
    inventory_conflicts.labels(kind=kind).inc()


def record_cart_operation(operation: str):
    cart_operations.labels(operation=operation).inc()


def record_notification(kind: str, result: str):
    notification_jobs.labels(kind=kind, result=result).inc()


def record_sweep(entity: str, count: int):
    if count:
        sweeper_transitions.labels(entity=entity).inc(count)
