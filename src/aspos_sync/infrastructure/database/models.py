"""SQLAlchemy models for the ASPOS synchronizer.

Two storage backends live side by side: the catalog (products with key-value
metadata, addressed by a local id) and relational side tables keyed by ASPOS
identifiers (stores, inventory/price lines). The work queue and scheduler
bookkeeping are persisted here as well so they survive process restarts.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""


# =============================================================================
# Enums
# =============================================================================


class StoreStatus(str, PyEnum):
    """Upstream store status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    TEST = "test"


class TaskKind(str, PyEnum):
    """Pipeline stage a queued task runs."""

    STORES = "stores"
    PRODUCTS = "products"
    INVENTORY = "inventory"
    PRICES = "prices"


class TaskStatus(str, PyEnum):
    """Queued task status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"


# Canonical full-run order
STAGE_ORDER = (TaskKind.STORES, TaskKind.PRODUCTS, TaskKind.INVENTORY, TaskKind.PRICES)

# Catalog metadata keys
META_ASPOS_ID = "_aspos_id"
META_STORE_IDS = "_aspos_store_ids"
META_PRICE = "_price"
META_REGULAR_PRICE = "_regular_price"


# =============================================================================
# Relational side tables
# =============================================================================


class AsposStore(Base):
    """Mirrored ASPOS store, replaced wholesale on every sync."""

    __tablename__ = "aspos_stores"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    city: Mapped[Optional[str]] = mapped_column(String(255))
    code: Mapped[Optional[str]] = mapped_column(String(64))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    name: Mapped[Optional[str]] = mapped_column(String(255))
    phone_number: Mapped[Optional[str]] = mapped_column(String(64))
    postal_code: Mapped[Optional[str]] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(String(32), default=StoreStatus.ACTIVE.value)
    street: Mapped[Optional[str]] = mapped_column(String(255))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (Index("ix_aspos_stores_status", "status"),)


class InventoryLine(Base):
    """Stock and price of one product in one store."""

    __tablename__ = "aspos_inventory"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("catalog_products.id", ondelete="CASCADE"), nullable=False
    )
    store_id: Mapped[str] = mapped_column(String(64), nullable=False)
    aspos_product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    available_quantity: Mapped[float] = mapped_column(Float, default=0)
    physical_stock_quantity: Mapped[float] = mapped_column(Float, default=0)
    price_incl_tax: Mapped[Optional[float]] = mapped_column(Float)
    price_excl_tax: Mapped[Optional[float]] = mapped_column(Float)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("product_id", "store_id", name="uq_aspos_inventory_product_store"),
        Index("ix_aspos_inventory_aspos_product_store", "aspos_product_id", "store_id"),
    )


# =============================================================================
# Catalog
# =============================================================================


class CatalogProduct(Base):
    """Catalog product entity. Linked to ASPOS only through its metadata."""

    __tablename__ = "catalog_products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    description: Mapped[Optional[str]] = mapped_column(Text)
    aspos_state: Mapped[Optional[str]] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(String(32), default="publish")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    meta: Mapped[list["CatalogProductMeta"]] = relationship(
        back_populates="product", cascade="all, delete-orphan"
    )


class CatalogProductMeta(Base):
    """Key-value attribute attached to a catalog product."""

    __tablename__ = "catalog_product_meta"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("catalog_products.id", ondelete="CASCADE"), nullable=False
    )
    meta_key: Mapped[str] = mapped_column(String(255), nullable=False)
    meta_value: Mapped[Optional[str]] = mapped_column(Text)

    product: Mapped[CatalogProduct] = relationship(back_populates="meta")

    __table_args__ = (
        UniqueConstraint("product_id", "meta_key", name="uq_catalog_product_meta_key"),
        # Partial: only the ASPOS id is looked up by value
        Index(
            "ix_catalog_product_meta_aspos_id",
            "meta_value",
            postgresql_where=text(f"meta_key = '{META_ASPOS_ID}'"),
            sqlite_where=text(f"meta_key = '{META_ASPOS_ID}'"),
        ),
    )


# =============================================================================
# Work Queue
# =============================================================================


class SyncTask(Base):
    """Durable FIFO queue entry. Position is the autoincrement id."""

    __tablename__ = "sync_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    store_id: Mapped[Optional[str]] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(32), default=TaskStatus.PENDING.value)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )


class SyncTrigger(Base):
    """Scheduler bookkeeping: pending queue trigger and hook firing times."""

    __tablename__ = "sync_triggers"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)  # 'queue', 'hourly', 'daily'
    scheduled_for: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_fired_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


# =============================================================================
# Sync Status
# =============================================================================


class SyncStatus(Base):
    """Track data synchronization status per stage."""

    __tablename__ = "sync_status"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)  # 'stores', 'products', etc.
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    records_synced: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(50), default="idle")  # idle, running, error
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )
