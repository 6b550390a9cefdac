"""Prometheus metrics for settlement outcomes, fare volume, notifications and the outbox"""

from prometheus_client import Counter, Histogram

# Settlement metrics
settlement_counter = Counter(
    "fareflow_settlement_total",
    "Fare taps processed",
    ["outcome"],  # success | low_balance | insufficient_fare | ...
)

fare_collected_counter = Counter(
    "fareflow_fare_collected_total",
    "Fare amount collected in minor currency units",
)

settlement_conflicts_counter = Counter(
    "fareflow_settlement_conflicts_total",
    "Debits retried because the rider balance changed concurrently",
)

# Live-state store metrics
live_state_fetch_failures_counter = Counter(
    "live_state_fetch_failures_total",
    "Failed bus live-state lookups",
)

# Notification metrics
notification_latency_histogram = Histogram(
    "notification_latency_seconds",
    "Notification transport response time",
    ["channel"],  # sms | email
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

notification_failure_counter = Counter(
    "notification_failures_total",
    "Failed notification delivery attempts",
    ["channel"],
)

# Outbox metrics
outbox_task_counter = Counter(
    "outbox_task_total",
    "Outbox task executions by result",
    ["event_type", "status"],  # delivered | pending | failed
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_settlement(outcome: str, fare_collected: int | None = None) -> None:
    """Record a settlement outcome and, for successful debits, the fare collected"""
    settlement_counter.labels(outcome=outcome).inc()

    if fare_collected:
        fare_collected_counter.inc(fare_collected)
