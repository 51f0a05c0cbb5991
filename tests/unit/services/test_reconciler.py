"""Unit tests for the reconciler upserts."""

from collections.abc import Callable

import pytest
import pytest_asyncio
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aspos_sync.infrastructure.database.models import (
    META_ASPOS_ID,
    META_PRICE,
    AsposStore,
    CatalogProduct,
    CatalogProductMeta,
    InventoryLine,
)
from aspos_sync.services.reconciler import Reconciler, map_product, map_store


async def _count(factory: async_sessionmaker[AsyncSession], model) -> int:
    async with factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar()


async def _lines(factory: async_sessionmaker[AsyncSession]) -> dict[str, InventoryLine]:
    async with factory() as session:
        result = await session.execute(select(InventoryLine).order_by(InventoryLine.store_id))
        return {line.store_id: line for line in result.scalars().all()}


@pytest.fixture
def reconciler(session: AsyncSession) -> Reconciler:
    return Reconciler(session)


class TestMapping:
    def test_map_store_renames_fields(self, sample_stores: list[dict]) -> None:
        fields = map_store(sample_stores[0])
        assert fields["id"] == "S1"
        assert fields["phone_number"] == "030-1234567"
        assert fields["postal_code"] == "3511AA"
        assert fields["status"] == "active"

    def test_map_product_falls_back_to_description(self) -> None:
        assert map_product({"id": "P1", "description": "Chair"})["name"] == "Chair"
        assert map_product({"id": "P1", "name": "Desk", "description": "x"})["name"] == "Desk"
        assert map_product({"id": "P1"})["name"] == "ASPOS product P1"

    def test_map_product_always_publishes(self) -> None:
        assert map_product({"id": "P1", "state": "inactive"})["status"] == "publish"


class TestUpsertStore:
    @pytest.mark.asyncio
    async def test_skips_test_store(
        self, reconciler: Reconciler, session_factory, sample_stores: list[dict]
    ) -> None:
        assert await reconciler.upsert_store(sample_stores[2]) is True
        assert await _count(session_factory, AsposStore) == 0

    @pytest.mark.asyncio
    async def test_replaces_by_id(
        self, reconciler: Reconciler, session_factory, sample_stores: list[dict]
    ) -> None:
        assert await reconciler.upsert_store(sample_stores[0])
        assert await reconciler.upsert_store({**sample_stores[0], "city": "Zeist"})

        async with session_factory() as session:
            stores = (await session.execute(select(AsposStore))).scalars().all()
        assert len(stores) == 1
        assert stores[0].city == "Zeist"

    @pytest.mark.asyncio
    async def test_missing_id_returns_false(self, reconciler: Reconciler, session_factory) -> None:
        assert await reconciler.upsert_store({"name": "No id"}) is False
        assert await _count(session_factory, AsposStore) == 0


class TestUpsertProduct:
    @pytest.mark.asyncio
    async def test_creates_then_updates_single_product(
        self, reconciler: Reconciler, session_factory, product_factory: Callable[..., dict]
    ) -> None:
        assert await reconciler.upsert_product(product_factory("P1", 10.0), "S1")
        assert await reconciler.upsert_product(
            product_factory("P1", 12.5, description="Renamed"), "S1"
        )

        async with session_factory() as session:
            products = (await session.execute(select(CatalogProduct))).scalars().all()
        assert len(products) == 1
        assert products[0].name == "Renamed"
        assert products[0].status == "publish"

        product_id = await reconciler.catalog.find_by_aspos_id("P1")
        assert product_id == products[0].id
        assert await reconciler.catalog.get_meta(product_id, META_PRICE) == "12.5"

    @pytest.mark.asyncio
    async def test_store_list_grows_without_duplicates(
        self, reconciler: Reconciler, product_factory: Callable[..., dict]
    ) -> None:
        for store_id in ("S1", "S2", "S1"):
            assert await reconciler.upsert_product(product_factory("P1"), store_id)

        product_id = await reconciler.catalog.find_by_aspos_id("P1")
        assert await reconciler.catalog.get_store_ids(product_id) == ["S1", "S2"]

    @pytest.mark.asyncio
    async def test_bad_record_returns_false(
        self, reconciler: Reconciler, session_factory, product_factory: Callable[..., dict]
    ) -> None:
        assert await reconciler.upsert_product({"description": "no id"}, "S1") is False
        assert await reconciler.upsert_product(product_factory("P2", priceInclTax="n/a"), "S1") is False
        assert await _count(session_factory, CatalogProduct) == 0

        # A failed record does not poison the session for the next one
        assert await reconciler.upsert_product(product_factory("P3"), "S1") is True


class TestUpsertInventory:
    @pytest_asyncio.fixture
    async def linked_product(
        self, reconciler: Reconciler, product_factory: Callable[..., dict]
    ) -> int:
        await reconciler.upsert_product(product_factory("P1", 10.0), "S1")
        await reconciler.upsert_product(product_factory("P1", 10.0), "S2")
        return await reconciler.catalog.find_by_aspos_id("P1")

    @pytest.mark.asyncio
    async def test_drops_stores_not_linked_to_product(
        self, reconciler: Reconciler, session_factory, linked_product: int
    ) -> None:
        stock = [
            {"storeId": "S1", "availableQuantity": 4, "physicalStockQuantity": 5},
            {"storeId": "S3", "availableQuantity": 9, "physicalStockQuantity": 9},
        ]
        assert await reconciler.upsert_inventory(linked_product, "P1", stock) is True

        lines = await _lines(session_factory)
        assert list(lines) == ["S1"]
        assert lines["S1"].available_quantity == 4
        assert lines["S1"].physical_stock_quantity == 5
        assert lines["S1"].aspos_product_id == "P1"

    @pytest.mark.asyncio
    async def test_new_line_takes_catalog_prices(
        self, reconciler: Reconciler, session_factory, linked_product: int
    ) -> None:
        await reconciler.upsert_inventory(
            linked_product, "P1", [{"storeId": "S2", "availableQuantity": 1, "physicalStockQuantity": 1}]
        )
        line = (await _lines(session_factory))["S2"]
        assert line.price_incl_tax == 10.0
        assert line.price_excl_tax == pytest.approx(8.26)

    @pytest.mark.asyncio
    async def test_existing_line_keeps_store_price(
        self, reconciler: Reconciler, session_factory, linked_product: int
    ) -> None:
        stock = [{"storeId": "S1", "availableQuantity": 2, "physicalStockQuantity": 2}]
        await reconciler.upsert_inventory(linked_product, "P1", stock)
        await reconciler.upsert_price({"id": "P1", "priceInclTax": 7.5, "priceExclTax": 6.2}, "S1")

        stock = [{"storeId": "S1", "availableQuantity": 0, "physicalStockQuantity": 1}]
        assert await reconciler.upsert_inventory(linked_product, "P1", stock)

        async with session_factory() as session:
            lines = (await session.execute(select(InventoryLine))).scalars().all()
        assert len(lines) == 1
        assert lines[0].available_quantity == 0
        assert lines[0].price_incl_tax == 7.5
        assert lines[0].price_excl_tax == 6.2

    @pytest.mark.asyncio
    async def test_bad_stock_record_reports_failure_but_keeps_others(
        self, reconciler: Reconciler, session_factory, linked_product: int
    ) -> None:
        stock = [
            {"availableQuantity": 1},
            {"storeId": "S2", "availableQuantity": "lots"},
            {"storeId": "S1", "availableQuantity": 3, "physicalStockQuantity": 3},
        ]
        assert await reconciler.upsert_inventory(linked_product, "P1", stock) is False
        assert list(await _lines(session_factory)) == ["S1"]


class TestUpsertPrice:
    @pytest.mark.asyncio
    async def test_updates_existing_line(
        self, reconciler: Reconciler, session_factory, product_factory: Callable[..., dict]
    ) -> None:
        await reconciler.upsert_product(product_factory("P1", 10.0), "S1")
        product_id = await reconciler.catalog.find_by_aspos_id("P1")
        await reconciler.upsert_inventory(
            product_id, "P1", [{"storeId": "S1", "availableQuantity": 1, "physicalStockQuantity": 1}]
        )

        assert await reconciler.upsert_price({"id": "P1", "priceInclTax": "11.95", "priceExclTax": "9.88"}, "S1")

        line = (await _lines(session_factory))["S1"]
        assert line.price_incl_tax == 11.95
        assert line.price_excl_tax == 9.88

    @pytest.mark.asyncio
    async def test_missing_line_is_not_an_error(
        self, reconciler: Reconciler, session_factory
    ) -> None:
        assert await reconciler.upsert_price({"id": "P404", "priceInclTax": 1.0}, "S1") is True
        assert await _count(session_factory, InventoryLine) == 0

    @pytest.mark.asyncio
    async def test_bad_price_returns_false(self, reconciler: Reconciler) -> None:
        assert await reconciler.upsert_price({"id": "P1", "priceInclTax": "abc"}, "S1") is False
        assert await reconciler.upsert_price({"priceInclTax": 1.0}, "S1") is False


class TestMetaIndexes:
    def test_value_index_covers_aspos_id_rows_only(self) -> None:
        value_indexes = [
            index
            for index in CatalogProductMeta.__table__.indexes
            if "meta_value" in [column.name for column in index.columns]
        ]
        assert [index.name for index in value_indexes] == ["ix_catalog_product_meta_aspos_id"]
        for dialect in ("postgresql", "sqlite"):
            where = value_indexes[0].dialect_options[dialect]["where"]
            assert str(where) == f"meta_key = '{META_ASPOS_ID}'"

    @pytest.mark.asyncio
    async def test_created_index_is_partial(self, session: AsyncSession) -> None:
        result = await session.execute(
            text("SELECT sql FROM sqlite_master WHERE name = 'ix_catalog_product_meta_aspos_id'")
        )
        assert "WHERE meta_key = '_aspos_id'" in result.scalar_one()

    @pytest.mark.asyncio
    async def test_product_in_many_stores_still_resolves(
        self, reconciler: Reconciler, product_factory: Callable[..., dict]
    ) -> None:
        for n in range(150):
            assert await reconciler.upsert_product(product_factory("P1"), f"STORE-{n:04d}")

        product_id = await reconciler.catalog.find_by_aspos_id("P1")
        assert len(await reconciler.catalog.get_store_ids(product_id)) == 150
