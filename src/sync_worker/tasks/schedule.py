"""Periodic scheduler hooks that enqueue pipeline runs."""

import structlog
from celery import shared_task
from sqlalchemy.exc import SQLAlchemyError

from aspos_sync.config import get_settings
from aspos_sync.infrastructure.database.connection import get_db_session
from aspos_sync.infrastructure.database.models import STAGE_ORDER, TaskKind
from aspos_sync.services.work_queue import build_work_queue, record_hook_fired
from sync_worker.main import schedule_queue_trigger
from sync_worker.runtime import run_async

logger = structlog.get_logger()

HOURLY_STAGES = (TaskKind.INVENTORY, TaskKind.PRICES)
DAILY_STAGES = STAGE_ORDER


def backoff_delay(retries: int, base_delay: int) -> int:
    """Exponential retry delay: base, 2*base, 4*base, ..."""
    return base_delay * (2**retries)


async def enqueue_stages(hook: str, kinds: tuple[TaskKind, ...]) -> list[int]:
    """Record the hook firing and enqueue the given stages in order."""
    async with get_db_session() as session:
        await record_hook_fired(session, hook)
        queue = build_work_queue(session, get_settings(), scheduler=schedule_queue_trigger)
        return [await queue.enqueue(kind) for kind in kinds]


def _run_hook(task, hook: str, kinds: tuple[TaskKind, ...]) -> dict:
    logger.info("Scheduler hook fired", hook=hook, stages=[k.value for k in kinds])
    try:
        task_ids = run_async(lambda: enqueue_stages(hook, kinds))
    except (SQLAlchemyError, OSError) as e:
        delay = backoff_delay(task.request.retries, task.default_retry_delay)
        logger.warning(
            "Scheduler hook failed, retrying",
            hook=hook,
            error=str(e),
            retry_in=delay,
            attempt=task.request.retries + 1,
        )
        raise task.retry(exc=e, countdown=delay)
    return {"hook": hook, "task_ids": task_ids}


@shared_task(bind=True)
def enqueue_hourly_sync(self) -> dict:
    """
    Enqueue the hourly inventory and price refresh.

    Returns:
        dict: Hook name and the ids of the enqueued tasks
    """
    return _run_hook(self, "hourly", HOURLY_STAGES)


@shared_task(bind=True)
def enqueue_daily_sync(self) -> dict:
    """
    Enqueue a full run: stores, products, inventory, prices.

    Returns:
        dict: Hook name and the ids of the enqueued tasks
    """
    return _run_hook(self, "daily", DAILY_STAGES)
