from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
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


class AuditTypeEnum(str, enum.Enum):
    FULL = "full"
    CYCLE = "cycle"
    SPOT = "spot"


class AuditStatusEnum(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    PENDING_APPROVAL = "pending_approval"
    COMPLETED = "completed"


class DiscrepancyStatusEnum(str, enum.Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class DiscrepancyResolutionEnum(str, enum.Enum):
    ADJUST = "adjust"
    ACCEPT_SYSTEM = "accept_system"


class AuditSession(Base):
    __tablename__ = "stock_audits"
    __table_args__ = (
        Index("ix_stock_audits_status", "status"),
        Index("ix_stock_audits_scope", "warehouse_id", "zone_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)
    zone_id = Column(Integer, ForeignKey("warehouse_zones.id"), nullable=True)
    audit_type = Column(
        SAEnum(AuditTypeEnum, name="stock_audit_type_enum", native_enum=False),
        nullable=False,
        default=AuditTypeEnum.FULL,
    )
    status = Column(
        SAEnum(AuditStatusEnum, name="stock_audit_status_enum", native_enum=False),
        nullable=False,
        default=AuditStatusEnum.IN_PROGRESS,
    )
    notes = Column(Text, nullable=True)

    created_by_user_id = Column(String(36), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    submitted_by_user_id = Column(String(36), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    approved_by_user_id = Column(String(36), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approval_notes = Column(Text, nullable=True)

    items = relationship(
        "WorksheetItem",
        back_populates="audit",
        cascade="all, delete-orphan",
        order_by="WorksheetItem.id",
    )
    discrepancies = relationship(
        "Discrepancy",
        back_populates="audit",
        cascade="all, delete-orphan",
        order_by="Discrepancy.id",
    )

    def __repr__(self) -> str:
        return f"<AuditSession id={self.id} status={self.status}>"


class WorksheetItem(Base):
    """Snapshot of one location row taken when the audit opened."""

    __tablename__ = "stock_audit_worksheet_items"
    __table_args__ = (
        UniqueConstraint("audit_id", "location_stock_id", name="uq_worksheet_audit_location"),
    )

    id = Column(Integer, primary_key=True, index=True)
    audit_id = Column(Integer, ForeignKey("stock_audits.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    location_stock_id = Column(Integer, ForeignKey("location_stock.id"), nullable=False)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)
    zone_id = Column(Integer, ForeignKey("warehouse_zones.id"), nullable=True)

    system_quantity = Column(Integer, nullable=False)
    counted_quantity = Column(Integer, nullable=True)
    variance = Column(Integer, nullable=True)
    count_notes = Column(Text, nullable=True)
    counted_by_user_id = Column(String(36), nullable=True)
    counted_at = Column(DateTime(timezone=True), nullable=True)

    audit = relationship("AuditSession", back_populates="items")
    product = relationship("Product")
    discrepancy = relationship(
        "Discrepancy",
        back_populates="item",
        uselist=False,
        cascade="all, delete-orphan",
    )


class Discrepancy(Base):
    __tablename__ = "stock_audit_discrepancies"

    id = Column(Integer, primary_key=True, index=True)
    audit_id = Column(Integer, ForeignKey("stock_audits.id", ondelete="CASCADE"), nullable=False, index=True)
    worksheet_item_id = Column(
        Integer,
        ForeignKey("stock_audit_worksheet_items.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=False)
    zone_id = Column(Integer, ForeignKey("warehouse_zones.id"), nullable=True)

    system_quantity = Column(Integer, nullable=False)
    counted_quantity = Column(Integer, nullable=False)
    variance = Column(Integer, nullable=False)
    status = Column(
        SAEnum(DiscrepancyStatusEnum, name="stock_audit_discrepancy_status_enum", native_enum=False),
        nullable=False,
        default=DiscrepancyStatusEnum.PENDING,
        index=True,
    )
    resolution = Column(
        SAEnum(DiscrepancyResolutionEnum, name="stock_audit_resolution_enum", native_enum=False),
        nullable=True,
    )
    adjustment_reason = Column(Text, nullable=True)
    resolution_notes = Column(Text, nullable=True)
    resolved_by_user_id = Column(String(36), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    audit = relationship("AuditSession", back_populates="discrepancies")
    item = relationship("WorksheetItem", back_populates="discrepancy")
