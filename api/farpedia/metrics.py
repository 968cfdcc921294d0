from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi.responses import Response

# Approval workflow
edit_approvals = Counter(
    "farpedia_edit_approvals_total",
    "Edit approval attempts by outcome",
    ["outcome"],  # approved | forbidden | already_approved | not_found | expired | failed
)

points_awarded = Counter(
    "farpedia_points_awarded_total",
    "Points written to the contributions ledger",
    ["source_type"],
)

user_points_increment_failures = Counter(
    "farpedia_user_points_increment_failures_total",
    "Aggregate increments that failed after their ledger row committed",
)

# Reputation provider
reputation_lookups = Counter(
    "farpedia_reputation_lookups_total",
    "Neynar profile lookups",
    ["status"],  # ok | not_found | error | cached
)

reputation_lookup_duration = Histogram(
    "farpedia_reputation_lookup_duration_seconds",
    "Time to fetch one Neynar profile, retries included",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

admission_decisions = Counter(
    "farpedia_admission_decisions_total",
    "Article creation admission gate decisions",
    ["decision"],  # admitted | rejected
)

# HTTP request metrics (from middleware)
http_requests = Counter(
    "farpedia_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

http_request_duration = Histogram(
    "farpedia_http_request_duration_seconds",
    "HTTP request duration",
    ["method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)


async def metrics_endpoint():
    """FastAPI endpoint handler that returns Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
