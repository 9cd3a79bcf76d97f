"""Prometheus metrics inventory.

Every metric the service exports is declared here; the module that owns
a behavior imports its metric and increments it at the point of action.
Counters only go up, so tests assert on deltas (see tests/middleware/test_metrics.py).

Label values are bounded sets (decision, deny reason, status names,
route templates).  Never label with ids or raw paths.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, route template, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------

ACCESS_DECISIONS = Counter(
    "access_decisions_total",
    "Access gate decisions",
    ["decision", "reason"],  # allow|deny, none|unauthenticated|guest_denied|forbidden
)

# ---------------------------------------------------------------------------
# Membership lifecycle
# ---------------------------------------------------------------------------

APPLICATION_TRANSITIONS = Counter(
    "application_transitions_total",
    "Application status transitions applied",
    ["from_status", "to_status"],
)

APPLICATION_TRANSITION_CONFLICTS = Counter(
    "application_transition_conflicts_total",
    "Transitions that lost a race to a concurrent writer",
)

PAYMENT_EVENTS = Counter(
    "payment_events_total",
    "Payment provider events by reconciliation outcome",
    ["event_type", "outcome"],  # outcome: applied|noop|dropped|error
)

MANUAL_PAYMENT_REVIEWS = Counter(
    "manual_payment_reviews_total",
    "Manual payment review decisions that changed a payment",
    ["decision"],  # approved|rejected
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],
)
