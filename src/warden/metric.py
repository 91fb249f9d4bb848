import re

from prometheus_client import Counter, Histogram

request_counter = Counter(
    "warden_num_req", "Total number of requests", labelnames=["path"]
)
webhook_counter = Counter(
    "warden_num_webhook", "Total number of webhooks", labelnames=["event", "action"]
)
webhook_skipped_counter = Counter(
    "warden_num_webhook_skipped",
    "Total number of skipped webhooks",
    labelnames=["event", "reason"],
)

error_counter = Counter(
    "warden_error_counter", "Total number of errors", labelnames=["context"]
)

api_call_count = Counter(
    "warden_num_api_calls",
    "Total number of GitHub API calls",
    labelnames=["endpoint"],
)

label_mutation_counter = Counter(
    "warden_label_mutations",
    "Label mutations issued against GitHub",
    labelnames=["operation", "result"],
)

check_run_publish_counter = Counter(
    "warden_check_run_publish",
    "Check run publish decisions",
    labelnames=["check", "result"],
)

policy_violation_counter = Counter(
    "warden_policy_violations",
    "Review label changes reverted because a human made them",
    labelnames=["track", "action"],
)

reconcile_run_counter = Counter(
    "warden_reconcile_runs", "Completed reconciliation sweeps", labelnames=["result"]
)

reconcile_pr_error_counter = Counter(
    "warden_reconcile_pr_errors", "Pull requests that failed during a sweep"
)

reconcile_duration_seconds = Histogram(
    "warden_reconcile_duration_seconds",
    "Wall time of a reconciliation sweep",
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1200),
)

_REPO_ENDPOINT_RE = re.compile(r"^/repos/[^/]+/[^/]+/(?P<kind>[^/?]+)")


def _normalize_api_endpoint(endpoint: str) -> str:
    match = _REPO_ENDPOINT_RE.match(endpoint)
    if match:
        return match.group("kind")
    return endpoint.strip("/").split("/")[0] or "unknown"


def record_api_call(endpoint: str) -> None:
    api_call_count.labels(endpoint=_normalize_api_endpoint(endpoint)).inc()
