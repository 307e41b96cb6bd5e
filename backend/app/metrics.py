# backend/app/metrics.py
from prometheus_client import Counter, Gauge, Histogram

# === Core metrics (definitions ONLY here) ===
workflow_transitions_total = Counter(
    "workflow_transitions_total", "Applied change-request transitions", ["action", "status"]
)

workflow_guard_failures_total = Counter(
    "workflow_guard_failures_total", "Workflow operations refused", ["kind"]
)

routing_failures_total = Counter(
    "routing_failures_total", "Transitions refused for lack of an active approver", ["role"]
)

notifications_total = Counter(
    "notifications_total", "Notification dispatch attempts", ["type", "outcome"]
)

pending_approvals_gauge = Gauge(
    "pending_approvals", "Change requests waiting on an approver", ["status"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds", "Request latency", ["method"]
)

def init_metrics_zero():
    # create label combos at 0 so dashboards never see "no data"
    from app.services.workflow import ACTIVE_REVIEW_STATUSES
    for s in ACTIVE_REVIEW_STATUSES:
        pending_approvals_gauge.labels(status=s).set(0)
    for role in ("hod", "qa_correspondent", "cct"):
        routing_failures_total.labels(role=role).inc(0)
    for kind in ("NotFound", "Forbidden", "InvalidState", "ValidationError", "RoutingError", "StorageError"):
        workflow_guard_failures_total.labels(kind=kind).inc(0)

def refresh_pending_gauge(db):
    from app.models.change_request import ChangeRequest
    from app.services.workflow import ACTIVE_REVIEW_STATUSES
    counts = {s: 0 for s in ACTIVE_REVIEW_STATUSES}
    rows = (
        db.query(ChangeRequest.status)
        .filter(
            ChangeRequest.is_deleted.is_(False),
            ChangeRequest.current_approver_id.isnot(None),
            ChangeRequest.status.in_(ACTIVE_REVIEW_STATUSES),
        )
        .all()
    )
    for (status,) in rows:
        counts[status] = counts.get(status, 0) + 1
    for s, n in counts.items():
        pending_approvals_gauge.labels(status=s).set(n)
