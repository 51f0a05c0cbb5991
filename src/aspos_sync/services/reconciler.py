"""Upsert engine mapping ASPOS records onto local entities.

Every public upsert handles exactly one upstream record, commits it on its own
and reports success as a boolean. Failures are logged and never raised, so a
stage can keep going with the next record.
"""

from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aspos_sync.exceptions import StorageError, SyncError, UpstreamFormatError
from aspos_sync.infrastructure.database.models import (
    META_ASPOS_ID,
    META_PRICE,
    META_REGULAR_PRICE,
    AsposStore,
    InventoryLine,
    StoreStatus,
)
from aspos_sync.services.catalog import CatalogStore

logger = structlog.get_logger()


def _require_id(record: dict[str, Any], field: str = "id") -> str:
    value = record.get(field)
    if value is None or value == "":
        raise UpstreamFormatError(f"Record is missing '{field}'")
    return str(value)


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise UpstreamFormatError(f"Expected a number, got {value!r}") from e


def map_store(record: dict[str, Any]) -> dict[str, Any]:
    """Map an upstream store record onto AsposStore columns."""
    return {
        "id": _require_id(record),
        "city": record.get("city"),
        "code": record.get("code"),
        "email": record.get("email"),
        "name": record.get("name"),
        "phone_number": record.get("phoneNumber"),
        "postal_code": record.get("postalCode"),
        "status": str(record.get("status") or StoreStatus.ACTIVE.value).lower(),
        "street": record.get("street"),
    }


def map_product(record: dict[str, Any]) -> dict[str, Any]:
    """Map an upstream web-product record onto CatalogProduct columns."""
    aspos_id = _require_id(record)
    description = record.get("description")
    return {
        "name": record.get("name") or description or f"ASPOS product {aspos_id}",
        "description": description,
        "aspos_state": record.get("state"),
        # Publish unconditionally; the upstream state is kept for reference only.
        "status": "publish",
    }


class Reconciler:
    """Idempotent create/update of stores, products, inventory and prices."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.catalog = CatalogStore(session)

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StorageError(str(e)) from e

    async def _fail(self, operation: str, error: Exception, **context: Any) -> bool:
        if isinstance(error, SQLAlchemyError):
            error = StorageError(str(error))
        await self.session.rollback()
        logger.error(
            f"{operation} failed",
            error_type=type(error).__name__,
            error=str(error),
            **context,
        )
        return False

    # -------------------------------------------------------------------------
    # Stores
    # -------------------------------------------------------------------------

    async def upsert_store(self, record: dict[str, Any]) -> bool:
        """Replace the store row keyed by its ASPOS id. Test stores are skipped."""
        try:
            fields = map_store(record)
            if fields["status"] == StoreStatus.TEST.value:
                logger.debug("Skipping test store", store_id=fields["id"])
                return True

            await self.session.merge(AsposStore(**fields))
            await self._commit()
            logger.debug("Upserted store", store_id=fields["id"])
            return True
        except (SyncError, SQLAlchemyError) as e:
            return await self._fail("upsert_store", e, store_id=record.get("id"))

    # -------------------------------------------------------------------------
    # Products
    # -------------------------------------------------------------------------

    async def upsert_product(self, record: dict[str, Any], store_id: str) -> bool:
        """
        Update-if-found-else-insert a catalog product for an ASPOS web-product.

        The lookup goes through the `_aspos_id` metadata because local and
        upstream ids are different key spaces. Prices and ids are written on
        both paths and store_id joins the product's store list.
        """
        aspos_id = record.get("id")
        try:
            aspos_id = _require_id(record)
            fields = map_product(record)
            price = _to_float(record.get("priceInclTax"))
            regular_price = _to_float(record.get("priceExclTax"))

            product_id = await self.catalog.find_by_aspos_id(aspos_id)
            if product_id is not None:
                await self.catalog.update_product(product_id, fields)
                action = "updated"
            else:
                product_id = await self.catalog.insert_product(fields)
                action = "created"

            await self.catalog.set_meta(product_id, META_ASPOS_ID, aspos_id)
            await self.catalog.set_meta(product_id, META_PRICE, price)
            await self.catalog.set_meta(product_id, META_REGULAR_PRICE, regular_price)
            await self.catalog.add_store_id(product_id, str(store_id))
            await self._commit()

            logger.debug(
                f"Product {action}",
                product_id=product_id,
                aspos_id=aspos_id,
                store_id=store_id,
            )
            return True
        except (SyncError, SQLAlchemyError, LookupError) as e:
            return await self._fail(
                "upsert_product", e, aspos_id=aspos_id, store_id=store_id
            )

    # -------------------------------------------------------------------------
    # Inventory
    # -------------------------------------------------------------------------

    async def upsert_inventory(
        self, product_id: int, aspos_product_id: str, stock_records: list[dict[str, Any]]
    ) -> bool:
        """
        Replace inventory lines for a product, one per stock-info record.

        Records for stores missing from the product's store list are dropped.
        Existing per-store prices are kept; new lines start from the product's
        catalog prices until the prices stage refines them.
        """
        try:
            store_ids = await self.catalog.get_store_ids(product_id)
        except SQLAlchemyError as e:
            return await self._fail("upsert_inventory", e, product_id=product_id)

        success = True
        for record in stock_records:
            success = await self._upsert_stock_record(
                product_id, aspos_product_id, store_ids, record
            ) and success
        return success

    async def _upsert_stock_record(
        self,
        product_id: int,
        aspos_product_id: str,
        store_ids: list[str],
        record: dict[str, Any],
    ) -> bool:
        store_id = record.get("storeId")
        try:
            store_id = _require_id(record, "storeId")
            if store_id not in store_ids:
                logger.debug(
                    "Dropping stock for store not linked to product",
                    product_id=product_id,
                    store_id=store_id,
                )
                return True

            available = _to_float(record.get("availableQuantity")) or 0.0
            physical = _to_float(record.get("physicalStockQuantity")) or 0.0

            query = select(InventoryLine).where(
                InventoryLine.product_id == product_id,
                InventoryLine.store_id == store_id,
            )
            line = (await self.session.execute(query)).scalar_one_or_none()
            if line is None:
                line = InventoryLine(
                    product_id=product_id,
                    store_id=store_id,
                    price_incl_tax=_to_float(
                        await self.catalog.get_meta(product_id, META_PRICE)
                    ),
                    price_excl_tax=_to_float(
                        await self.catalog.get_meta(product_id, META_REGULAR_PRICE)
                    ),
                )
                self.session.add(line)

            line.aspos_product_id = aspos_product_id
            line.available_quantity = available
            line.physical_stock_quantity = physical
            await self._commit()
            return True
        except (SyncError, SQLAlchemyError) as e:
            return await self._fail(
                "upsert_inventory", e, product_id=product_id, store_id=store_id
            )

    # -------------------------------------------------------------------------
    # Prices
    # -------------------------------------------------------------------------

    async def upsert_price(self, record: dict[str, Any], store_id: str) -> bool:
        """Update the price fields of an existing inventory line; missing lines are skipped."""
        aspos_id = record.get("id")
        try:
            aspos_id = _require_id(record)
            statement = (
                update(InventoryLine)
                .where(
                    InventoryLine.aspos_product_id == aspos_id,
                    InventoryLine.store_id == str(store_id),
                )
                .values(
                    price_incl_tax=_to_float(record.get("priceInclTax")),
                    price_excl_tax=_to_float(record.get("priceExclTax")),
                )
            )
            result = await self.session.execute(statement)
            await self._commit()
            if result.rowcount == 0:
                logger.debug("No inventory line for price", aspos_id=aspos_id, store_id=store_id)
            return True
        except (SyncError, SQLAlchemyError) as e:
            return await self._fail("upsert_price", e, aspos_id=aspos_id, store_id=store_id)
