"""Prometheus metrics for point consumption, payment crediting and login blocking"""

from prometheus_client import Counter, Histogram

# Ledger metrics
points_consumed_counter = Counter(
    "fakedetector_points_consumed_total",
    "Detection points consumed",
    ["tier"],  # free | basic | standard | business
)

consumption_rejected_counter = Counter(
    "fakedetector_consumption_rejected_total",
    "Consume requests rejected for lack of points",
    ["plan_tier"],
)

points_credited_counter = Counter(
    "fakedetector_points_credited_total",
    "Points credited to ledgers",
    ["tier", "source"],  # source: purchase | reward | daily | admin
)

# Payment metrics
payment_event_counter = Counter(
    "fakedetector_payment_events_total",
    "Gateway webhook events handled",
    ["gateway", "outcome"],  # credited | duplicate_ignored | verification_failed | ignored
)

gateway_verify_latency_histogram = Histogram(
    "gateway_verify_latency_seconds",
    "Gateway transaction verification response time",
    ["gateway"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0],
)

gateway_unavailable_counter = Counter(
    "gateway_unavailable_total",
    "Gateway verification calls that timed out or errored",
    ["gateway"],
)

# Authentication abuse metrics
failed_attempt_counter = Counter(
    "fakedetector_failed_attempts_total",
    "Failed authentication attempts recorded",
    ["kind", "status"],  # status: tracking | newly_blocked | already_blocked
)

# Alert delivery
notification_failure_counter = Counter(
    "notification_failures_total",
    "Alert events that could not be delivered",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_consumption(plan_tier: str, tier_used: str | None) -> None:
    """Record one consume call: the tier spent, or a rejection for the account's plan"""
    if tier_used is None:
        consumption_rejected_counter.labels(plan_tier=plan_tier).inc()
    else:
        points_consumed_counter.labels(tier=tier_used).inc()


def record_credit(tier: str, amount: int, source: str) -> None:
    points_credited_counter.labels(tier=tier, source=source).inc(amount)


def record_payment_event(gateway: str, outcome: str) -> None:
    payment_event_counter.labels(gateway=gateway, outcome=outcome).inc()


def record_failed_attempt(kind: str, status: str) -> None:
    failed_attempt_counter.labels(kind=kind, status=status).inc()
