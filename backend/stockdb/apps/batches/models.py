from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from stockdb.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchStatusEnum(str, enum.Enum):
    ACTIVE = "active"
    DEPLETED = "depleted"


class Batch(Base):
    __tablename__ = "batches"
    __table_args__ = (
        UniqueConstraint(
            "product_id",
            "warehouse_id",
            "zone_id",
            "batch_number",
            name="uq_batches_scope_number",
        ),
        CheckConstraint(
            "quantity_remaining >= 0 AND quantity_remaining <= quantity_received",
            name="ck_batches_remaining_bounds",
        ),
        Index("ix_batches_fifo", "product_id", "warehouse_id", "zone_id", "status", "received_date"),
        Index("ix_batches_expiry", "expiry_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)
    zone_id = Column(Integer, ForeignKey("warehouse_zones.id"), nullable=True)
    batch_number = Column(String(64), nullable=False, index=True)
    lot_number = Column(String(64), nullable=True)
    supplier = Column(String(128), nullable=True)
    quantity_received = Column(Integer, nullable=False)
    quantity_remaining = Column(Integer, nullable=False)
    quantity_sold = Column(Integer, nullable=False, default=0)
    received_date = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=True)
    status = Column(
        SAEnum(BatchStatusEnum, name="batch_status_enum", native_enum=False),
        nullable=False,
        default=BatchStatusEnum.ACTIVE,
    )
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by_user_id = Column(String(36), nullable=True)

    product = relationship("Product")

    def __repr__(self) -> str:
        return f"<Batch id={self.id} number={self.batch_number} remaining={self.quantity_remaining}>"
