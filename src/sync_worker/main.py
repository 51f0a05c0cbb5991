"""Celery application for sync worker."""

from celery import Celery
from celery.schedules import crontab

from aspos_sync.config import get_settings
from aspos_sync.logging_setup import configure_logging

settings = get_settings()
configure_logging(settings)

PROCESS_QUEUE_TASK = "sync_worker.tasks.queue.process_sync_queue"
HOURLY_HOOK_TASK = "sync_worker.tasks.schedule.enqueue_hourly_sync"
DAILY_HOOK_TASK = "sync_worker.tasks.schedule.enqueue_daily_sync"

HOOK_RETRY_POLICY = {
    "max_retries": settings.hook_max_retries,
    "default_retry_delay": settings.hook_retry_delay_seconds,
}

# Create Celery app
app = Celery(
    "sync_worker",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
    include=[
        "sync_worker.tasks.queue",
        "sync_worker.tasks.schedule",
    ],
)

# Celery configuration
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.worker_task_time_limit,
    task_soft_time_limit=settings.worker_task_soft_time_limit,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_default_queue="sync",
    task_routes={
        "sync_worker.tasks.*": {"queue": "sync"},
    },
    task_annotations={
        HOURLY_HOOK_TASK: HOOK_RETRY_POLICY,
        DAILY_HOOK_TASK: HOOK_RETRY_POLICY,
    },
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Stock and prices every hour
    "enqueue-hourly-sync": {
        "task": HOURLY_HOOK_TASK,
        "schedule": crontab(minute=settings.hourly_sync_minute),
    },
    # Full run (stores, products, inventory, prices) once a day
    "enqueue-daily-sync": {
        "task": DAILY_HOOK_TASK,
        "schedule": crontab(minute=0, hour=settings.daily_sync_hour),
    },
}


def schedule_queue_trigger(delay_seconds: int) -> None:
    """Ask the worker to process the next queued task after a delay."""
    app.send_task(PROCESS_QUEUE_TASK, countdown=delay_seconds)


def run() -> None:
    """Run the Celery worker."""
    app.worker_main(["worker", "--loglevel=info", "-Q", "sync"])


if __name__ == "__main__":
    run()
