"""
Prometheus metrics for observability
"""

import re
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from prometheus_client.core import CollectorRegistry

# Create a custom registry to avoid conflicts
metrics_registry = CollectorRegistry()

# HTTP request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["path", "method", "status"],
    registry=metrics_registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["path", "method"],
    registry=metrics_registry,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# Escrow metrics
escrow_operations_total = Counter(
    "escrow_operations_total",
    "Total successful escrow operations",
    ["operation"],  # create_order, confirm_delivery, auto_release, open_dispute, resolve_dispute, withdrawal_*
    registry=metrics_registry,
)

# Ledger metrics
ledger_anomalies_total = Counter(
    "ledger_anomalies_total",
    "Total ledger anomalies detected",
    ["kind"],  # insufficient_held, replay_mismatch
    registry=metrics_registry,
)

# Notification metrics
notification_failures_total = Counter(
    "notification_failures_total",
    "Total notifications that could not be dispatched",
    registry=metrics_registry,
)


def record_http_request(
    path: str,
    method: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """
    Record HTTP request metrics.

    Args:
        path: Request path (normalized)
        method: HTTP method
        status_code: Response status code
        duration_seconds: Request duration in seconds
    """
    normalized_path = _normalize_path(path)

    http_requests_total.labels(
        path=normalized_path,
        method=method.upper(),
        status=str(status_code),
    ).inc()

    http_request_duration_seconds.labels(
        path=normalized_path,
        method=method.upper(),
    ).observe(duration_seconds)


def record_escrow_operation(operation: str) -> None:
    """Record a committed escrow operation"""
    escrow_operations_total.labels(operation=operation).inc()


def record_ledger_anomaly(kind: str) -> None:
    """
    Record ledger anomaly.

    Args:
        kind: insufficient_held or replay_mismatch
    """
    ledger_anomalies_total.labels(kind=kind).inc()


def record_notification_failure() -> None:
    """Record notification dispatch failure"""
    notification_failures_total.inc()


def _normalize_path(path: str) -> str:
    """
    Normalize path for metrics (replace UUIDs and IDs with placeholders).

    Examples:
        /api/v1/wallet -> /api/v1/wallet
        /api/v1/orders/123e4567-... -> /api/v1/orders/{id}
    """
    path = re.sub(
        r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}',
        '{id}',
        path,
        flags=re.IGNORECASE,
    )
    path = re.sub(r'/\d+', '/{id}', path)
    return path


def get_metrics_output() -> bytes:
    """Get Prometheus metrics output"""
    return generate_latest(metrics_registry)


__all__ = [
    "CONTENT_TYPE_LATEST",
    "get_metrics_output",
    "record_escrow_operation",
    "record_http_request",
    "record_ledger_anomaly",
    "record_notification_failure",
]
