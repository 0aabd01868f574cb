from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from stockdb.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MovementTypeEnum(str, enum.Enum):
    RECEIVE = "RECEIVE"
    SALE = "SALE"
    TRANSFER = "TRANSFER"
    ADJUSTMENT = "ADJUSTMENT"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    unit_price = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    inventory = relationship(
        "InventoryRecord",
        back_populates="product",
        uselist=False,
        cascade="all, delete-orphan",
    )
    locations = relationship("LocationStock", back_populates="product")

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku}>"


class InventoryRecord(Base):
    """Authoritative on-hand total for one product."""

    __tablename__ = "inventory_records"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_records_quantity_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    quantity = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    product = relationship("Product", back_populates="inventory")


class LocationStock(Base):
    """
    Stock of one product at a warehouse, or at a zone inside it.

    `zone_id` NULL means the warehouse-level row.
    """

    __tablename__ = "location_stock"
    __table_args__ = (
        UniqueConstraint("product_id", "warehouse_id", "zone_id", name="uq_location_stock_scope"),
        CheckConstraint("quantity >= 0", name="ck_location_stock_quantity_non_negative"),
        CheckConstraint(
            "reserved_quantity >= 0 AND reserved_quantity <= quantity",
            name="ck_location_stock_reserved_bounds",
        ),
        Index("ix_location_stock_warehouse_zone", "warehouse_id", "zone_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)
    zone_id = Column(Integer, ForeignKey("warehouse_zones.id"), nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    reserved_quantity = Column(Integer, nullable=False, default=0)
    aisle = Column(String(16), nullable=True)
    shelf = Column(String(16), nullable=True)
    bin = Column(String(16), nullable=True)
    last_audit_date = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    product = relationship("Product", back_populates="locations")
    warehouse = relationship("Warehouse")
    zone = relationship("WarehouseZone")

    @property
    def available_quantity(self) -> int:
        return (self.quantity or 0) - (self.reserved_quantity or 0)

    def __repr__(self) -> str:
        return (
            f"<LocationStock product={self.product_id} warehouse={self.warehouse_id} "
            f"zone={self.zone_id} qty={self.quantity}>"
        )


class InventoryMovement(Base):
    """
    One line per stock mutation.

    `quantity` is signed against the aggregate for receive/sale/adjustment
    and is the moved amount for transfers, which leave the aggregate alone.
    """

    __tablename__ = "inventory_movements"
    __table_args__ = (
        Index("ix_inventory_movements_product_time", "product_id", "occurred_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    movement_type = Column(
        SAEnum(MovementTypeEnum, name="inventory_movement_type_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    quantity = Column(Integer, nullable=False)
    resulting_quantity = Column(Integer, nullable=False)
    from_warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=True, index=True)
    from_zone_id = Column(Integer, ForeignKey("warehouse_zones.id"), nullable=True)
    to_warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=True, index=True)
    to_zone_id = Column(Integer, ForeignKey("warehouse_zones.id"), nullable=True)
    reference = Column(String(128), nullable=True)
    notes = Column(Text, nullable=True)
    actor_user_id = Column(String(36), nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    product = relationship("Product")
