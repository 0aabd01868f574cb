from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import ApprovalStatusEnum, CustodyStatusEnum


class CustodyItemCreate(BaseModel):
    product_id: int
    serial_number: str = Field(min_length=1, max_length=128)
    custodian_id: str = Field(min_length=1, max_length=36)
    warehouse_id: Optional[int] = None
    zone_id: Optional[int] = None
    notes: Optional[str] = None


class CustodyItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    serial_number: str
    current_custodian_id: str
    status: CustodyStatusEnum
    value: Decimal
    warehouse_id: Optional[int] = None
    zone_id: Optional[int] = None
    last_custody_change: Optional[datetime] = None


class TransferRequest(BaseModel):
    to_custodian_id: str
    transfer_reason: str
    location_from: Optional[str] = None
    location_to: Optional[str] = None
    notes: Optional[str] = None
    require_approval: bool = False


class ApprovalDecision(BaseModel):
    notes: Optional[str] = None


class AcknowledgeRequest(BaseModel):
    notes: Optional[str] = None
    status: CustodyStatusEnum = CustodyStatusEnum.IN_STORAGE


class CustodyTransferRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    item_id: int
    from_custodian_id: Optional[str] = None
    to_custodian_id: str
    transfer_reason: str
    location_from: Optional[str] = None
    location_to: Optional[str] = None
    authorized_by_user_id: str
    approval_request_id: Optional[int] = None
    notes: Optional[str] = None
    transferred_at: datetime
    acknowledged_at: Optional[datetime] = None
    acknowledged_by_user_id: Optional[str] = None
    acknowledgment_notes: Optional[str] = None


class ApprovalRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    item_id: int
    product_id: int
    transaction_type: str
    from_custodian_id: Optional[str] = None
    to_custodian_id: str
    transfer_reason: str
    item_value: Decimal
    notes: Optional[str] = None
    requested_by_user_id: str
    requested_at: datetime
    status: ApprovalStatusEnum
    decided_by_user_id: Optional[str] = None
    decided_at: Optional[datetime] = None
    decision_notes: Optional[str] = None


class TransferOutcome(BaseModel):
    """Either an immediate transfer or a pending approval request."""

    requires_approval: bool
    item: CustodyItemRead
    transfer: Optional[CustodyTransferRead] = None
    approval_request: Optional[ApprovalRequestRead] = None


class ApprovalOutcome(BaseModel):
    approval_request: ApprovalRequestRead
    item: CustodyItemRead
    transfer: Optional[CustodyTransferRead] = None


class CustodyChainRead(BaseModel):
    item: CustodyItemRead
    transfers: List[CustodyTransferRead] = []
