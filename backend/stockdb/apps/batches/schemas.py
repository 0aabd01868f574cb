from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import BatchStatusEnum


class BatchInfo(BaseModel):
    """Batch fields attached to a receipt."""

    batch_number: str = Field(min_length=1, max_length=64)
    lot_number: Optional[str] = None
    supplier: Optional[str] = None
    received_date: Optional[date] = None
    expiry_date: Optional[date] = None
    notes: Optional[str] = None


class BatchCreateRequest(BatchInfo):
    product_id: int
    warehouse_id: int
    zone_id: Optional[int] = None
    quantity: int


class BatchConsumeRequest(BaseModel):
    product_id: int
    warehouse_id: int
    zone_id: Optional[int] = None
    quantity: int


class BatchRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    warehouse_id: int
    zone_id: Optional[int] = None
    batch_number: str
    lot_number: Optional[str] = None
    supplier: Optional[str] = None
    quantity_received: int
    quantity_remaining: int
    quantity_sold: int
    received_date: date
    expiry_date: Optional[date] = None
    status: BatchStatusEnum


class BatchAllocationRead(BaseModel):
    batch_id: int
    batch_number: str
    quantity_taken: int
    quantity_remaining: int
    status: BatchStatusEnum
