"""Prometheus metric definitions for Digestly.

Single source of truth for all custom metrics. Import from here in API and Celery code.
"""

from prometheus_client import Counter, Histogram

# --- Celery task metrics ---

celery_task_total = Counter(
    "digestly_celery_task_total",
    "Total Celery tasks executed",
    ["task_name", "status"],
)

celery_task_duration_seconds = Histogram(
    "digestly_celery_task_duration_seconds",
    "Celery task execution duration in seconds",
    ["task_name"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)

# --- Business metrics ---

digests_dispatched_total = Counter(
    "digestly_digests_dispatched_total",
    "Scheduled digest dispatches by outcome",
    ["result"],
)

digest_runs_total = Counter(
    "digestly_digest_runs_total",
    "Periodic digest batch runs by trigger",
    ["trigger"],
)

schedules_auto_paused_total = Counter(
    "digestly_schedules_auto_paused_total",
    "Schedules paused by the system, by reason",
    ["reason"],
)

quota_rejections_total = Counter(
    "digestly_quota_rejections_total",
    "Schedule activations rejected by the tier quota",
    ["tier"],
)
