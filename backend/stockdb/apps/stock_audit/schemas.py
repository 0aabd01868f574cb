from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from .models import (
    AuditStatusEnum,
    AuditTypeEnum,
    DiscrepancyResolutionEnum,
    DiscrepancyStatusEnum,
)


class AuditCreate(BaseModel):
    warehouse_id: int
    zone_id: Optional[int] = None
    audit_type: AuditTypeEnum = AuditTypeEnum.FULL
    notes: Optional[str] = None


class CountRecord(BaseModel):
    worksheet_item_id: int
    counted_quantity: int
    count_notes: Optional[str] = None


class DiscrepancyResolve(BaseModel):
    resolution: DiscrepancyResolutionEnum
    adjustment_reason: Optional[str] = None
    resolution_notes: Optional[str] = None


class AuditApprove(BaseModel):
    approval_notes: Optional[str] = None


class WorksheetItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    audit_id: int
    product_id: int
    location_stock_id: int
    warehouse_id: int
    zone_id: Optional[int] = None
    system_quantity: int
    counted_quantity: Optional[int] = None
    variance: Optional[int] = None
    count_notes: Optional[str] = None
    counted_by_user_id: Optional[str] = None
    counted_at: Optional[datetime] = None


class DiscrepancyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    audit_id: int
    worksheet_item_id: int
    product_id: int
    warehouse_id: int
    zone_id: Optional[int] = None
    system_quantity: int
    counted_quantity: int
    variance: int
    status: DiscrepancyStatusEnum
    resolution: Optional[DiscrepancyResolutionEnum] = None
    adjustment_reason: Optional[str] = None
    resolution_notes: Optional[str] = None
    resolved_by_user_id: Optional[str] = None
    resolved_at: Optional[datetime] = None


class AuditRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    warehouse_id: int
    zone_id: Optional[int] = None
    audit_type: AuditTypeEnum
    status: AuditStatusEnum
    notes: Optional[str] = None
    created_by_user_id: str
    created_at: datetime
    submitted_by_user_id: Optional[str] = None
    submitted_at: Optional[datetime] = None
    approved_by_user_id: Optional[str] = None
    approved_at: Optional[datetime] = None
    approval_notes: Optional[str] = None


class AuditDetailRead(AuditRead):
    items: List[WorksheetItemRead] = []
    discrepancies: List[DiscrepancyRead] = []


class CountResult(BaseModel):
    item: WorksheetItemRead
    is_major_discrepancy: bool
    discrepancy_id: Optional[int] = None


class AuditSummary(BaseModel):
    audit_id: int
    status: AuditStatusEnum
    total_items: int
    counted_items: int
    variance_items: int
    major_discrepancies: int
    pending_discrepancies: int
    percent_complete: float
