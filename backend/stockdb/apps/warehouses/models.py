from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from stockdb.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ZoneTypeEnum(str, enum.Enum):
    STORAGE = "storage"
    PICKING = "picking"
    RECEIVING = "receiving"
    SHIPPING = "shipping"
    QUARANTINE = "quarantine"


class Warehouse(Base):
    __tablename__ = "warehouses"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(32), nullable=False, unique=True, index=True)
    name = Column(String(128), nullable=False)
    address = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    zones = relationship(
        "WarehouseZone",
        back_populates="warehouse",
        cascade="all, delete-orphan",
        order_by="WarehouseZone.code",
    )

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} code={self.code}>"


class WarehouseZone(Base):
    __tablename__ = "warehouse_zones"
    __table_args__ = (
        UniqueConstraint("warehouse_id", "code", name="uq_warehouse_zone_code"),
    )

    id = Column(Integer, primary_key=True, index=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id", ondelete="CASCADE"), nullable=False, index=True)
    code = Column(String(32), nullable=False)
    name = Column(String(128), nullable=False)
    zone_type = Column(
        SAEnum(ZoneTypeEnum, name="zone_type_enum", native_enum=False),
        nullable=False,
        default=ZoneTypeEnum.STORAGE,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    warehouse = relationship("Warehouse", back_populates="zones")

    def __repr__(self) -> str:
        return f"<WarehouseZone id={self.id} {self.warehouse_id}/{self.code}>"
