"""Manual sync triggers and work queue endpoints."""

from datetime import datetime
from typing import Annotated, AsyncGenerator

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aspos_sync.api.v1.health import check_aspos_credentials
from aspos_sync.clients.base import AsposApiConfig, create_http_client
from aspos_sync.config import get_settings
from aspos_sync.infrastructure.database.connection import get_session
from aspos_sync.infrastructure.database.models import SyncStatus, TaskKind
from aspos_sync.infrastructure.redis import SingleFlightLease, get_redis_client
from aspos_sync.services.pipeline import StageResult, SyncPipeline
from aspos_sync.services.work_queue import WorkQueue, build_work_queue

router = APIRouter()

LOG_URL = "/api/v1/logs"


# =============================================================================
# Models
# =============================================================================


class StageResponse(BaseModel):
    """Aggregate outcome of a manually triggered stage."""

    stage: str
    success: bool
    processed: int
    failed: int
    store_id: str | None = None
    error: str | None = None
    log: str = LOG_URL

    @classmethod
    def from_result(cls, result: StageResult) -> "StageResponse":
        return cls(**result.to_dict())


class EnqueueResponse(BaseModel):
    """Tasks appended to the work queue."""

    task_ids: list[int]
    queued: int
    log: str = LOG_URL


class QueuedTask(BaseModel):
    id: int
    kind: str
    store_id: str | None
    status: str
    submitted_at: datetime


class ProcessResponse(BaseModel):
    processed: bool
    result: StageResponse | None = None


class StatusRow(BaseModel):
    stage: str
    status: str
    records_synced: int
    last_sync_at: datetime | None
    error_message: str | None


class CredentialCheckResponse(BaseModel):
    valid: bool


# =============================================================================
# Dependencies
# =============================================================================


async def get_pipeline(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AsyncGenerator[SyncPipeline, None]:
    """Pipeline bound to the request's database session."""
    settings = get_settings()
    config = AsposApiConfig.from_settings(settings)
    async with create_http_client(config) as client:
        yield SyncPipeline(session, config, client, export_dir=settings.price_export_dir)


async def get_work_queue(
    pipeline: Annotated[SyncPipeline, Depends(get_pipeline)],
) -> WorkQueue:
    """Work queue that schedules its processing triggers on the Celery worker."""
    from sync_worker.main import schedule_queue_trigger

    settings = get_settings()
    return build_work_queue(
        pipeline.session,
        settings,
        runner=pipeline.run_stage,
        scheduler=schedule_queue_trigger,
        lease=SingleFlightLease(await get_redis_client(), "queue", settings.queue_lease_ttl),
    )


PipelineDep = Annotated[SyncPipeline, Depends(get_pipeline)]
QueueDep = Annotated[WorkQueue, Depends(get_work_queue)]


# =============================================================================
# Stage triggers
# =============================================================================


@router.post("/stores", response_model=StageResponse)
async def sync_stores(pipeline: PipelineDep) -> StageResponse:
    """Mirror all ASPOS stores now."""
    return StageResponse.from_result(await pipeline.sync_stores())


@router.post("/products", response_model=StageResponse)
async def sync_products(
    pipeline: PipelineDep,
    store_id: str | None = Query(None, description="Sync one store; omit for all stores"),
) -> StageResponse:
    """Mirror web-products for one store or every active store."""
    return StageResponse.from_result(await pipeline.sync_products(store_id))


@router.post("/inventory", response_model=StageResponse)
async def sync_inventory(pipeline: PipelineDep) -> StageResponse:
    """Mirror stock levels for every linked product."""
    return StageResponse.from_result(await pipeline.sync_inventory())


@router.post("/prices", response_model=StageResponse)
async def sync_prices(pipeline: PipelineDep) -> StageResponse:
    """Refresh per-store prices for every active store."""
    return StageResponse.from_result(await pipeline.sync_prices())


@router.post("/everything", response_model=EnqueueResponse)
async def sync_everything(queue: QueueDep) -> EnqueueResponse:
    """Enqueue stores, products, inventory and prices; they drain one per tick."""
    task_ids = await queue.enqueue_everything()
    return EnqueueResponse(task_ids=task_ids, queued=len(task_ids))


@router.post("/enqueue/{kind}", response_model=EnqueueResponse)
async def enqueue_stage(
    kind: TaskKind,
    queue: QueueDep,
    store_id: str | None = Query(None),
) -> EnqueueResponse:
    """Enqueue a single stage, optionally scoped to one store."""
    task_id = await queue.enqueue(kind, store_id)
    return EnqueueResponse(task_ids=[task_id], queued=1)


# =============================================================================
# Queue and status
# =============================================================================


@router.get("/queue", response_model=list[QueuedTask])
async def list_queue(queue: QueueDep) -> list[QueuedTask]:
    """Pending tasks in processing order."""
    return [
        QueuedTask(
            id=task.id,
            kind=task.kind,
            store_id=task.store_id,
            status=task.status,
            submitted_at=task.submitted_at,
        )
        for task in await queue.pending()
    ]


@router.post("/queue/process", response_model=ProcessResponse)
async def process_queue(queue: QueueDep) -> ProcessResponse:
    """Process the head of the queue now."""
    result = await queue.process_next()
    if result is None:
        return ProcessResponse(processed=False)
    return ProcessResponse(processed=True, result=StageResponse.from_result(result))


@router.get("/status", response_model=list[StatusRow])
async def sync_status(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> list[StatusRow]:
    """Last run bookkeeping per stage."""
    result = await session.execute(select(SyncStatus).order_by(SyncStatus.id))
    return [
        StatusRow(
            stage=row.id,
            status=row.status,
            records_synced=row.records_synced,
            last_sync_at=row.last_sync_at,
            error_message=row.error_message,
        )
        for row in result.scalars().all()
    ]


@router.post("/credentials/check", response_model=CredentialCheckResponse)
async def check_credentials() -> CredentialCheckResponse:
    """Validate the configured ASPOS credentials with a live token fetch."""
    return CredentialCheckResponse(valid=await check_aspos_credentials())
