from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    event,
    inspect,
)
from sqlalchemy.orm import relationship

from stockdb.database import Base
from stockdb.errors import InvalidStateError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CustodyStatusEnum(str, enum.Enum):
    IN_STORAGE = "in_storage"
    IN_TRANSIT = "in_transit"
    ASSIGNED = "assigned"


class ApprovalStatusEnum(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CustodyItem(Base):
    __tablename__ = "custody_items"
    __table_args__ = (
        Index("ix_custody_items_status", "status"),
        Index("ix_custody_items_custodian", "current_custodian_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    serial_number = Column(String(128), nullable=False, unique=True)
    current_custodian_id = Column(String(36), nullable=False)
    status = Column(
        SAEnum(CustodyStatusEnum, name="custody_status_enum", native_enum=False),
        nullable=False,
        default=CustodyStatusEnum.IN_STORAGE,
    )
    warehouse_id = Column(Integer, ForeignKey("warehouses.id"), nullable=True)
    zone_id = Column(Integer, ForeignKey("warehouse_zones.id"), nullable=True)
    notes = Column(Text, nullable=True)
    last_custody_change = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by_user_id = Column(String(36), nullable=True)

    product = relationship("Product")
    transfers = relationship(
        "CustodyTransfer",
        back_populates="item",
        order_by="CustodyTransfer.id.desc()",
    )

    @property
    def value(self) -> Decimal:
        if self.product is None or self.product.unit_price is None:
            return Decimal("0")
        return Decimal(self.product.unit_price)

    def __repr__(self) -> str:
        return f"<CustodyItem id={self.id} serial={self.serial_number} status={self.status}>"


class CustodyTransfer(Base):
    """One hand-off in an item's custody chain. Only the acknowledgment is ever filled in later."""

    __tablename__ = "custody_transfers"
    __table_args__ = (
        Index("ix_custody_transfers_item_time", "item_id", "transferred_at"),
        Index("ix_custody_transfers_recipient", "to_custodian_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("custody_items.id"), nullable=False, index=True)
    from_custodian_id = Column(String(36), nullable=True)
    to_custodian_id = Column(String(36), nullable=False)
    transfer_reason = Column(Text, nullable=False)
    location_from = Column(String(255), nullable=True)
    location_to = Column(String(255), nullable=True)
    authorized_by_user_id = Column(String(36), nullable=False)
    approval_request_id = Column(Integer, ForeignKey("custody_approval_requests.id"), nullable=True)
    notes = Column(Text, nullable=True)
    transferred_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    acknowledged_at = Column(DateTime(timezone=True), nullable=True)
    acknowledged_by_user_id = Column(String(36), nullable=True)
    acknowledgment_notes = Column(Text, nullable=True)

    item = relationship("CustodyItem", back_populates="transfers")


class ApprovalRequest(Base):
    __tablename__ = "custody_approval_requests"
    __table_args__ = (
        Index("ix_custody_approval_requests_status", "status"),
        Index("ix_custody_approval_requests_item", "item_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("custody_items.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    transaction_type = Column(String(32), nullable=False, default="custody_transfer")
    from_custodian_id = Column(String(36), nullable=True)
    to_custodian_id = Column(String(36), nullable=False)
    transfer_reason = Column(Text, nullable=False)
    location_from = Column(String(255), nullable=True)
    location_to = Column(String(255), nullable=True)
    item_value = Column(Numeric(14, 2), nullable=False)
    notes = Column(Text, nullable=True)

    requested_by_user_id = Column(String(36), nullable=False)
    requested_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    status = Column(
        SAEnum(ApprovalStatusEnum, name="custody_approval_status_enum", native_enum=False),
        nullable=False,
        default=ApprovalStatusEnum.PENDING,
    )
    decided_by_user_id = Column(String(36), nullable=True)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    decision_notes = Column(Text, nullable=True)

    item = relationship("CustodyItem")


_ACKNOWLEDGMENT_FIELDS = {"acknowledged_at", "acknowledged_by_user_id", "acknowledgment_notes"}


@event.listens_for(CustodyTransfer, "before_update")
def _reject_transfer_rewrite(mapper, connection, target) -> None:
    state = inspect(target)
    changed = {
        column.key for column in mapper.column_attrs if state.attrs[column.key].history.has_changes()
    }
    if changed - _ACKNOWLEDGMENT_FIELDS:
        raise InvalidStateError(
            "Custody transfers are immutable once recorded.",
            transfer_id=target.id,
            fields=sorted(changed - _ACKNOWLEDGMENT_FIELDS),
        )


@event.listens_for(CustodyTransfer, "before_delete")
def _reject_transfer_delete(mapper, connection, target) -> None:
    raise InvalidStateError("Custody transfers cannot be deleted.", transfer_id=target.id)
