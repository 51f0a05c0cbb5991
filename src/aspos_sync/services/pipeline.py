"""Synchronization pipeline stages.

Each stage acquires a fresh credential, streams one upstream resource through
the paginated fetcher and pushes every record through the reconciler. Errors
are caught at the stage boundary and reported as a failed StageResult; a
failing store or product only stops its own fetch loop.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

import httpx
import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aspos_sync.clients.auth import Credential, TokenProvider
from aspos_sync.clients.base import AsposApiConfig, create_http_client
from aspos_sync.clients.pagination import PaginatedFetcher
from aspos_sync.config import Settings, get_settings
from aspos_sync.exceptions import StorageError, SyncError
from aspos_sync.infrastructure.database.connection import get_db_session
from aspos_sync.infrastructure.database.models import (
    STAGE_ORDER,
    AsposStore,
    StoreStatus,
    SyncStatus,
    TaskKind,
)
from aspos_sync.services.price_export import PriceExportFile
from aspos_sync.services.reconciler import Reconciler

logger = structlog.get_logger()


@dataclass
class StageResult:
    """Outcome of one stage invocation."""

    stage: str
    success: bool = True
    processed: int = 0
    failed: int = 0
    store_id: str | None = None
    error: str | None = None

    def record(self, ok: bool) -> None:
        self.processed += 1
        if not ok:
            self.failed += 1
            self.success = False

    def fail(self, error: Exception) -> None:
        self.success = False
        self.error = f"{type(error).__name__}: {error}"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SyncPipeline:
    """The four sync stages: stores, products, inventory and prices."""

    def __init__(
        self,
        session: AsyncSession,
        config: AsposApiConfig,
        client: httpx.AsyncClient,
        export_dir: str = "var/exports",
        token_provider: TokenProvider | None = None,
    ):
        self.session = session
        self.config = config
        self.tokens = token_provider or TokenProvider(config, client)
        self.fetcher = PaginatedFetcher(client, page_size=config.page_size)
        self.reconciler = Reconciler(session)
        self.export_dir = export_dir

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def run_stage(self, kind: TaskKind | str, store_id: str | None = None) -> StageResult:
        """Run one stage by kind, scoped to a store when store_id is given."""
        stages: dict[TaskKind, Callable[[str | None], Awaitable[StageResult]]] = {
            TaskKind.STORES: self.sync_stores,
            TaskKind.PRODUCTS: self.sync_products,
            TaskKind.INVENTORY: self.sync_inventory,
            TaskKind.PRICES: self.sync_prices,
        }
        return await stages[TaskKind(kind)](store_id)

    async def run_all(self) -> list[StageResult]:
        """Run every stage in canonical order: stores, products, inventory, prices."""
        return [await self.run_stage(kind) for kind in STAGE_ORDER]

    async def _run(
        self,
        kind: TaskKind,
        store_id: str | None,
        body: Callable[[StageResult, Credential], Awaitable[None]],
    ) -> StageResult:
        result = StageResult(stage=kind.value, store_id=store_id)
        log = logger.bind(stage=kind.value, store_id=store_id)
        log.info("Stage started")
        await self._set_status(kind, "running")

        try:
            credential = await self.tokens.acquire_token()
            await body(result, credential)
        except SyncError as e:
            result.fail(e)
            log.error("Stage failed", error_type=type(e).__name__, error=str(e))
        except (SQLAlchemyError, OSError) as e:
            await self.session.rollback()
            result.fail(StorageError(str(e)))
            log.error("Stage failed", error_type=type(e).__name__, error=str(e))
        except Exception as e:
            await self.session.rollback()
            result.fail(e)
            log.error("Stage crashed", error_type=type(e).__name__, error=str(e), exc_info=True)
        finally:
            await self._set_status(
                kind,
                "idle" if result.success else "error",
                records_synced=result.processed,
                error_message=result.error,
            )
            log.info(
                "Stage finished",
                success=result.success,
                processed=result.processed,
                failed=result.failed,
            )
        return result

    # -------------------------------------------------------------------------
    # Stores
    # -------------------------------------------------------------------------

    async def sync_stores(self, store_id: str | None = None) -> StageResult:
        """Mirror upstream stores. With store_id only that store is reconciled."""

        async def body(result: StageResult, credential: Credential) -> None:
            async for record in self.fetcher.fetch_all(
                self.config.url("stores"),
                credential.auth_headers(),
                {"includeNonActiveStores": "false"},
            ):
                if store_id is not None and str(record.get("id")) != store_id:
                    continue
                result.record(await self.reconciler.upsert_store(record))

        return await self._run(TaskKind.STORES, store_id, body)

    # -------------------------------------------------------------------------
    # Products
    # -------------------------------------------------------------------------

    async def sync_products(self, store_id: str | None = None) -> StageResult:
        """Mirror web-products of one store, or of every active store."""

        async def body(result: StageResult, credential: Credential) -> None:
            store_ids = [store_id] if store_id is not None else await self.active_store_ids()
            for sid in store_ids:
                try:
                    async for record in self._web_products(sid, credential):
                        result.record(await self.reconciler.upsert_product(record, sid))
                except SyncError as e:
                    result.fail(e)
                    logger.error(
                        "Product fetch failed for store",
                        store_id=sid,
                        error_type=type(e).__name__,
                        error=str(e),
                    )

        return await self._run(TaskKind.PRODUCTS, store_id, body)

    # -------------------------------------------------------------------------
    # Inventory
    # -------------------------------------------------------------------------

    async def sync_inventory(self, store_id: str | None = None) -> StageResult:
        """Mirror stock-info for every linked product, optionally for one store."""

        async def body(result: StageResult, credential: Credential) -> None:
            params = {"storeId": store_id} if store_id is not None else None
            for product_id, aspos_id in await self.reconciler.catalog.linked_products():
                if store_id is not None:
                    store_ids = await self.reconciler.catalog.get_store_ids(product_id)
                    if store_id not in store_ids:
                        continue
                try:
                    # stock-info is not paginated upstream
                    stock = await self.fetcher.fetch_records(
                        self.config.url(f"products/{aspos_id}/stock-info"),
                        credential.auth_headers(),
                        params,
                    )
                except SyncError as e:
                    result.fail(e)
                    logger.error(
                        "Stock fetch failed for product",
                        product_id=product_id,
                        aspos_id=aspos_id,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                    continue
                result.record(
                    await self.reconciler.upsert_inventory(product_id, aspos_id, stock)
                )

        return await self._run(TaskKind.INVENTORY, store_id, body)

    # -------------------------------------------------------------------------
    # Prices
    # -------------------------------------------------------------------------

    async def sync_prices(self, store_id: str | None = None) -> StageResult:
        """
        Refresh per-store prices on existing inventory lines.

        For a single store prices are applied as they stream in. The all-stores
        run first exports every price line to a CSV side file, applies it and
        then deletes the file.
        """

        async def single(result: StageResult, credential: Credential) -> None:
            async for record in self._web_products(store_id, credential):
                result.record(await self.reconciler.upsert_price(record, store_id))

        async def all_stores(result: StageResult, credential: Credential) -> None:
            with PriceExportFile(self.export_dir) as export:
                for sid in await self.active_store_ids():
                    try:
                        async for record in self._web_products(sid, credential):
                            export.write(sid, record)
                    except SyncError as e:
                        result.fail(e)
                        logger.error(
                            "Price fetch failed for store",
                            store_id=sid,
                            error_type=type(e).__name__,
                            error=str(e),
                        )
                logger.info("Exported price lines", rows=export.rows_written)
                for sid, record in export.rows():
                    result.record(await self.reconciler.upsert_price(record, sid))

        return await self._run(
            TaskKind.PRICES, store_id, single if store_id is not None else all_stores
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _web_products(self, store_id: str, credential: Credential) -> AsyncIterator[dict[str, Any]]:
        return self.fetcher.fetch_all(
            self.config.url("sync/web-products"),
            credential.auth_headers(),
            {"storeId": store_id},
        )

    async def active_store_ids(self) -> list[str]:
        """Ids of mirrored stores with status active."""
        query = (
            select(AsposStore.id)
            .where(AsposStore.status == StoreStatus.ACTIVE.value)
            .order_by(AsposStore.id)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def _set_status(
        self,
        kind: TaskKind,
        status: str,
        records_synced: int = 0,
        error_message: str | None = None,
    ) -> None:
        """Update the stage's sync status record."""
        try:
            row = await self.session.get(SyncStatus, kind.value)
            if row is None:
                row = SyncStatus(id=kind.value)
                self.session.add(row)
            row.status = status
            row.error_message = error_message
            if status != "running":
                row.records_synced = records_synced
                row.last_sync_at = datetime.now()
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.warning("Could not update sync status", stage=kind.value, error=str(e))


@asynccontextmanager
async def open_pipeline(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[SyncPipeline]:
    """Build a pipeline with its own HTTP client and database session."""
    settings = settings or get_settings()
    config = AsposApiConfig.from_settings(settings)
    async with create_http_client(config, transport) as client:
        async with get_db_session() as session:
            yield SyncPipeline(session, config, client, export_dir=settings.price_export_dir)
