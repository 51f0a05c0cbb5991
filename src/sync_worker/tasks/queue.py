"""Work queue draining task."""

import structlog
from celery import shared_task

from aspos_sync.config import get_settings
from aspos_sync.infrastructure.redis import SingleFlightLease, redis_connection
from aspos_sync.services.pipeline import open_pipeline
from aspos_sync.services.work_queue import build_work_queue
from sync_worker.main import schedule_queue_trigger
from sync_worker.runtime import run_async

logger = structlog.get_logger()


async def process_queue_once() -> dict:
    """Process the head of the queue under the single-flight lease."""
    settings = get_settings()
    async with redis_connection() as redis_client, open_pipeline(settings) as pipeline:
        queue = build_work_queue(
            pipeline.session,
            settings,
            runner=pipeline.run_stage,
            scheduler=schedule_queue_trigger,
            lease=SingleFlightLease(redis_client, "queue", settings.queue_lease_ttl),
        )
        result = await queue.process_next()

    if result is None:
        return {"processed": False}
    return {"processed": True, "result": result.to_dict()}


@shared_task(bind=True)
def process_sync_queue(self) -> dict:
    """
    Process exactly one queued sync task.

    Scheduled by the queue itself: ~30s after an enqueue and ~60s after each
    processed task while the queue is non-empty. A failed task is dropped.

    Returns:
        dict: Stage result of the processed task, or processed=False
    """
    logger.info("Queue trigger fired")
    return run_async(process_queue_once)
