"""Celery application configuration."""

import time

from celery import Celery
from celery.schedules import crontab
from celery.signals import task_failure, task_postrun, task_prerun, task_retry

from app.config import get_settings
from app.metrics import celery_task_duration_seconds, celery_task_total

settings = get_settings()

celery_app = Celery(
    "digestly",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["app.tasks.digest_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_routes={
        "app.tasks.digest_tasks.*": {"queue": "digests"},
    },
    beat_schedule={
        # Periodic digest run; the lookback window should cover the interval
        "run-scheduled-digests": {
            "task": "app.tasks.digest_tasks.run_scheduled_digests",
            "schedule": crontab(minute=f"*/{settings.digest_run_interval_minutes}"),
        },
        # Pause schedules over their tier limit: daily at 3 AM UTC
        "reconcile-schedule-quotas": {
            "task": "app.tasks.digest_tasks.reconcile_schedule_quotas",
            "schedule": crontab(hour=3, minute=0),
        },
    },
)

# task_id -> monotonic start time
_task_start_times: dict[str, float] = {}


def _setup_task_signals() -> None:
    @task_prerun.connect(weak=False)
    def _on_prerun(task_id=None, task=None, **kwargs):
        _task_start_times[task_id] = time.monotonic()

    @task_postrun.connect(weak=False)
    def _on_postrun(task_id=None, task=None, state=None, **kwargs):
        started = _task_start_times.pop(task_id, None)
        name = task.name if task else "unknown"
        if started is not None:
            celery_task_duration_seconds.labels(task_name=name).observe(time.monotonic() - started)
        if state == "SUCCESS":
            celery_task_total.labels(task_name=name, status="success").inc()

    @task_failure.connect(weak=False)
    def _on_failure(sender=None, task_id=None, **kwargs):
        name = sender.name if sender else "unknown"
        celery_task_total.labels(task_name=name, status="failure").inc()

    @task_retry.connect(weak=False)
    def _on_retry(sender=None, **kwargs):
        name = sender.name if sender else "unknown"
        celery_task_total.labels(task_name=name, status="retry").inc()


_setup_task_signals()
