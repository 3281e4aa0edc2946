"""Prometheus metric inventory for progress-service.

Every metric the service exports is declared here; the module that owns
the behavior imports the metric and increments/observes it at the point
of action.

What to watch
---------------
  progress_submissions_total{outcome}
      acknowledged / rejected / failed / replayed.  A rising "failed"
      rate means the storage layer is rolling back whole units of work;
      clients are expected to retry those.

  progress_submission_duration_seconds
      End-to-end coordinator time, commit included.  The submit path is
      bounded by SUBMIT_TIMEOUT_SECONDS (3s by default), so the upper
      buckets are the interesting ones.

  aggregation_anomalies_total{level}
      Orphaned lessons/courses found while rolling up.  Non-zero means
      the catalog and the progress tables disagree; summaries for the
      affected ancestors are stale until the next successful recompute.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
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
# Progress engine metrics
# ---------------------------------------------------------------------------

PROGRESS_SUBMISSIONS = Counter(
    "progress_submissions_total",
    "Progress submissions by terminal outcome",
    ["outcome"],  # acknowledged|rejected|failed|replayed
)

SUBMISSION_DURATION = Histogram(
    "progress_submission_duration_seconds",
    "Coordinator run time for one progress submission",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 3.0, 5.0],
)

COMPLETION_TRANSITIONS = Counter(
    "completion_transitions_total",
    "Leaf completion-state transitions",
    ["transition"],  # completed|uncompleted
)

AGGREGATION_ANOMALIES = Counter(
    "aggregation_anomalies_total",
    "Rollups skipped because an ancestor could not be found",
    ["level"],  # lesson|course
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)
