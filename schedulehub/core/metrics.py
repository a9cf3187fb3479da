"""Prometheus metrics for the API and the background worker.

Labels stay low-cardinality: job and notification type names only, never
request ids or email addresses.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

JOB_RUNS_TOTAL = Counter(
    "schedulehub_job_runs_total",
    "Background job runs by job name and final status.",
    labelnames=("job", "status"),
)

JOB_ITEMS_PROCESSED_TOTAL = Counter(
    "schedulehub_job_items_processed_total",
    "Items handled successfully by background jobs.",
    labelnames=("job",),
)

JOB_ITEMS_FAILED_TOTAL = Counter(
    "schedulehub_job_items_failed_total",
    "Items that failed inside background jobs.",
    labelnames=("job",),
)

JOB_DURATION_SECONDS = Histogram(
    "schedulehub_job_duration_seconds",
    "Wall time of background job runs.",
    labelnames=("job",),
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

QUEUE_DEPTH = Gauge(
    "schedulehub_queue_depth",
    "Pending items seen by a job after its last run.",
    labelnames=("job",),
)

BOOKINGS_TOTAL = Counter(
    "schedulehub_bookings_total",
    "Booking attempts by outcome.",
    labelnames=("outcome",),
)


def record_job_run(
    job: str,
    status: str,
    *,
    processed: int = 0,
    failed: int = 0,
    duration_seconds: float | None = None,
    queue_depth: int | None = None,
) -> None:
    JOB_RUNS_TOTAL.labels(job=job, status=status).inc()
    if processed:
        JOB_ITEMS_PROCESSED_TOTAL.labels(job=job).inc(processed)
    if failed:
        JOB_ITEMS_FAILED_TOTAL.labels(job=job).inc(failed)
    if duration_seconds is not None:
        JOB_DURATION_SECONDS.labels(job=job).observe(duration_seconds)
    if queue_depth is not None:
        QUEUE_DEPTH.labels(job=job).set(queue_depth)


__all__ = [
    "BOOKINGS_TOTAL",
    "JOB_DURATION_SECONDS",
    "JOB_ITEMS_FAILED_TOTAL",
    "JOB_ITEMS_PROCESSED_TOTAL",
    "JOB_RUNS_TOTAL",
    "QUEUE_DEPTH",
    "record_job_run",
]
