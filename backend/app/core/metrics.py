"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Admission orchestrator metrics
admission_decisions = Counter(
    'admission_decisions_total',
    'Admission orchestrator outcomes',
    ['operation', 'result']  # attending, pending, waitlist, not_attending or a lowercased error code
)

admission_latency = Histogram(
    'admission_latency_seconds',
    'Admission operation latency',
    ['operation'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

# Capacity ledger metrics
ledger_reservations = Counter(
    'ledger_reservations_total',
    'Capacity ledger reservation attempts',
    ['unit_type', 'result']  # reserved, at_capacity
)

ledger_releases = Counter(
    'ledger_releases_total',
    'Capacity ledger releases',
    ['unit_type']
)

compensations = Counter(
    'admission_compensations_total',
    'Reservations released because a later step failed',
    ['operation']
)

persistence_retries = Counter(
    'admission_persistence_retries_total',
    'Operations retried after a transient persistence failure',
    ['operation']
)

notification_failures = Counter(
    'notification_failures_total',
    'Attending notifications that failed or timed out'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
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

# Convenience functions for instrumentation
def record_admission(operation: str, result: str):
    """Record an orchestrator decision, e.g. ("confirm_track", "at_capacity")."""
    admission_decisions.labels(operation=operation, result=result).inc()

def record_reservation(unit_type: str, reserved: bool):
    result = "reserved" if reserved else "at_capacity"
    ledger_reservations.labels(unit_type=unit_type, result=result).inc()

def record_release(unit_type: str):
    ledger_releases.labels(unit_type=unit_type).inc()

def record_compensation(operation: str):
    compensations.labels(operation=operation).inc()

def record_retry(operation: str):
    persistence_retries.labels(operation=operation).inc()

def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
