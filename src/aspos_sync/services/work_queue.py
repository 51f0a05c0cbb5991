"""Durable single-flight work queue for pipeline stages.

Tasks are appended to the ``sync_tasks`` table and drained one per trigger
tick, oldest first. A processed task is removed whatever its outcome; failed
tasks are logged and not retried. After each tick another trigger is
scheduled while tasks remain, which spreads a burst of work over time instead
of running stages concurrently.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from aspos_sync.config import Settings
from aspos_sync.infrastructure.database.models import (
    STAGE_ORDER,
    SyncTask,
    SyncTrigger,
    TaskKind,
    TaskStatus,
)
from aspos_sync.infrastructure.redis import SingleFlightLease
from aspos_sync.services.pipeline import StageResult

logger = structlog.get_logger()

QUEUE_TRIGGER = "queue"

StageRunner = Callable[[TaskKind, str | None], Awaitable[StageResult]]
TriggerScheduler = Callable[[int], None]


class WorkQueue:
    """FIFO queue of sync tasks persisted in the database."""

    def __init__(
        self,
        session: AsyncSession,
        runner: StageRunner | None = None,
        scheduler: TriggerScheduler | None = None,
        lease: SingleFlightLease | None = None,
        initial_delay: int = 30,
        continue_delay: int = 60,
        stale_trigger_after: int = 900,
    ):
        self.session = session
        self.runner = runner
        self.scheduler = scheduler
        self.lease = lease
        self.initial_delay = initial_delay
        self.continue_delay = continue_delay
        self.stale_trigger_after = stale_trigger_after

    async def enqueue(self, kind: TaskKind | str, store_id: str | None = None) -> int:
        """Append a task and make sure a processing trigger is pending."""
        task = SyncTask(
            kind=TaskKind(kind).value,
            store_id=store_id,
            status=TaskStatus.PENDING.value,
            submitted_at=datetime.now(),
        )
        self.session.add(task)
        await self.session.commit()
        logger.info("Task enqueued", task_id=task.id, kind=task.kind, store_id=store_id)

        if not await self.trigger_pending():
            await self._schedule(self.initial_delay)
        return task.id

    async def enqueue_everything(self) -> list[int]:
        """Enqueue all four stages in canonical order."""
        return [await self.enqueue(kind) for kind in STAGE_ORDER]

    async def pending(self) -> list[SyncTask]:
        result = await self.session.execute(select(SyncTask).order_by(SyncTask.id))
        return list(result.scalars().all())

    async def size(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(SyncTask))
        return result.scalar() or 0

    async def process_next(self) -> StageResult | None:
        """
        Pop and run the head task.

        Returns None when the queue is empty or another trigger holds the lease.
        """
        if self.runner is None:
            raise RuntimeError("WorkQueue needs a stage runner to process tasks")

        if self.lease is None:
            return await self._process_head()

        async with self.lease.hold() as acquired:
            if not acquired:
                logger.info("Queue is already being processed, skipping tick")
                return None
            return await self._process_head()

    async def _process_head(self) -> StageResult | None:
        await self._set_trigger(None)

        head = await self.session.execute(select(SyncTask).order_by(SyncTask.id).limit(1))
        task = head.scalar_one_or_none()
        if task is None:
            logger.debug("Queue empty")
            return None

        task_id, kind, store_id = task.id, TaskKind(task.kind), task.store_id
        task.status = TaskStatus.IN_PROGRESS.value
        await self.session.commit()

        log = logger.bind(task_id=task_id, kind=kind.value, store_id=store_id)
        log.info("Processing queued task")
        try:
            result = await self.runner(kind, store_id)
        except Exception as e:
            await self.session.rollback()
            log.error("Queued task crashed", error=str(e), exc_info=True)
            result = StageResult(stage=kind.value, store_id=store_id)
            result.fail(e)

        await self.session.execute(delete(SyncTask).where(SyncTask.id == task_id))
        await self.session.commit()

        if result.success:
            log.info("Queued task succeeded", processed=result.processed)
        else:
            log.warning(
                "Queued task failed, dropped",
                processed=result.processed,
                failed=result.failed,
                error=result.error,
            )

        remaining = await self.size()
        if remaining:
            await self._schedule(self.continue_delay)
            log.info("Queue continues", remaining=remaining)
        return result

    # -------------------------------------------------------------------------
    # Trigger bookkeeping
    # -------------------------------------------------------------------------

    async def trigger_pending(self) -> bool:
        """True while a scheduled processing trigger has not yet fired or gone stale."""
        trigger = await self.session.get(SyncTrigger, QUEUE_TRIGGER)
        if trigger is None or trigger.scheduled_for is None:
            return False
        return trigger.scheduled_for + timedelta(seconds=self.stale_trigger_after) > datetime.now()

    async def _schedule(self, delay: int) -> None:
        if self.scheduler is None:
            logger.debug("No trigger scheduler configured", delay=delay)
            return
        self.scheduler(delay)
        await self._set_trigger(datetime.now() + timedelta(seconds=delay))
        logger.debug("Queue trigger scheduled", delay=delay)

    async def _set_trigger(self, scheduled_for: datetime | None) -> None:
        trigger = await self.session.get(SyncTrigger, QUEUE_TRIGGER)
        if trigger is None:
            trigger = SyncTrigger(name=QUEUE_TRIGGER)
            self.session.add(trigger)
        trigger.scheduled_for = scheduled_for
        if scheduled_for is None:
            trigger.last_fired_at = datetime.now()
        await self.session.commit()


async def record_hook_fired(session: AsyncSession, name: str) -> None:
    """Record when a scheduler hook ('hourly' or 'daily') last fired."""
    trigger = await session.get(SyncTrigger, name)
    if trigger is None:
        trigger = SyncTrigger(name=name)
        session.add(trigger)
    trigger.last_fired_at = datetime.now()
    await session.commit()


def build_work_queue(
    session: AsyncSession,
    settings: Settings,
    runner: StageRunner | None = None,
    scheduler: TriggerScheduler | None = None,
    lease: SingleFlightLease | None = None,
) -> WorkQueue:
    """Create a WorkQueue with delays and lease expiry taken from settings."""
    return WorkQueue(
        session,
        runner=runner,
        scheduler=scheduler,
        lease=lease,
        initial_delay=settings.queue_initial_delay_seconds,
        continue_delay=settings.queue_continue_delay_seconds,
        stale_trigger_after=settings.queue_lease_ttl,
    )
