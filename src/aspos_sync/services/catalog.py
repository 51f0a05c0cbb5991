"""Catalog store access.

The catalog addresses products by a local id. ASPOS identifiers and other
synced attributes live in key-value metadata, so lookups by upstream id go
through the metadata index rather than the primary key.
"""

from typing import Any

import orjson
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aspos_sync.infrastructure.database.models import (
    META_ASPOS_ID,
    META_STORE_IDS,
    CatalogProduct,
    CatalogProductMeta,
)


class CatalogStore:
    """Key-value upsert access to catalog products and their metadata."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_meta(self, key: str, value: str) -> int | None:
        """Return the id of the first product whose meta `key` equals `value`."""
        query = (
            select(CatalogProductMeta.product_id)
            .where(CatalogProductMeta.meta_key == key, CatalogProductMeta.meta_value == value)
            .order_by(CatalogProductMeta.product_id)
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar()

    async def find_by_aspos_id(self, aspos_id: str) -> int | None:
        return await self.find_by_meta(META_ASPOS_ID, aspos_id)

    async def insert_product(self, fields: dict[str, Any]) -> int:
        product = CatalogProduct(**fields)
        self.session.add(product)
        await self.session.flush()
        return product.id

    async def update_product(self, product_id: int, fields: dict[str, Any]) -> None:
        product = await self.session.get(CatalogProduct, product_id)
        if product is None:
            raise LookupError(f"Catalog product {product_id} does not exist")
        for name, value in fields.items():
            setattr(product, name, value)
        await self.session.flush()

    async def get_meta(self, product_id: int, key: str) -> str | None:
        query = select(CatalogProductMeta.meta_value).where(
            CatalogProductMeta.product_id == product_id,
            CatalogProductMeta.meta_key == key,
        )
        result = await self.session.execute(query)
        return result.scalar()

    async def set_meta(self, product_id: int, key: str, value: Any) -> None:
        """Insert or overwrite one metadata value. Non-strings are stored as text."""
        text_value = None if value is None else str(value)
        query = select(CatalogProductMeta).where(
            CatalogProductMeta.product_id == product_id,
            CatalogProductMeta.meta_key == key,
        )
        existing = (await self.session.execute(query)).scalar_one_or_none()
        if existing is not None:
            existing.meta_value = text_value
        else:
            self.session.add(
                CatalogProductMeta(product_id=product_id, meta_key=key, meta_value=text_value)
            )
        await self.session.flush()

    async def get_store_ids(self, product_id: int) -> list[str]:
        raw = await self.get_meta(product_id, META_STORE_IDS)
        if not raw:
            return []
        try:
            value = orjson.loads(raw)
        except orjson.JSONDecodeError:
            return []
        return [str(v) for v in value] if isinstance(value, list) else []

    async def add_store_id(self, product_id: int, store_id: str) -> list[str]:
        """Append store_id to the product's store list unless already present."""
        store_ids = await self.get_store_ids(product_id)
        if store_id not in store_ids:
            store_ids.append(store_id)
            await self.set_meta(product_id, META_STORE_IDS, orjson.dumps(store_ids).decode())
        return store_ids

    async def linked_products(self) -> list[tuple[int, str]]:
        """(local id, ASPOS id) for every catalog product linked to ASPOS."""
        query = (
            select(CatalogProductMeta.product_id, CatalogProductMeta.meta_value)
            .where(CatalogProductMeta.meta_key == META_ASPOS_ID)
            .order_by(CatalogProductMeta.product_id)
        )
        result = await self.session.execute(query)
        return [(row.product_id, row.meta_value) for row in result.all() if row.meta_value]
