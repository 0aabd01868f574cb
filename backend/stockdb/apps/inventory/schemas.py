from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from stockdb.apps.batches.schemas import BatchAllocationRead, BatchInfo

from .models import MovementTypeEnum


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


class ProductCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    unit_price: Decimal = Field(default=Decimal("0.00"), ge=0)


class ProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sku: str
    name: str
    description: Optional[str] = None
    unit_price: Decimal
    is_active: bool


# ---------------------------------------------------------------------------
# Stock requests
# ---------------------------------------------------------------------------
# Quantities are validated by the services so that every caller, not only
# HTTP, gets the same ValidationError.


class LocationRef(BaseModel):
    warehouse_id: int
    zone_id: Optional[int] = None


class StockReceiveRequest(BaseModel):
    product_id: int
    quantity: int
    warehouse_id: Optional[int] = None
    zone_id: Optional[int] = None
    batch: Optional[BatchInfo] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class StockSellRequest(BaseModel):
    product_id: int
    quantity: int
    warehouse_id: Optional[int] = None
    zone_id: Optional[int] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class StockTransferRequest(BaseModel):
    product_id: int
    quantity: int
    from_location: LocationRef
    to_location: LocationRef
    reference: Optional[str] = None
    notes: Optional[str] = None


class StockAdjustRequest(BaseModel):
    product_id: int
    warehouse_id: int
    zone_id: Optional[int] = None
    quantity_delta: int
    reason: str
    reference: Optional[str] = None


class ReservationRequest(BaseModel):
    product_id: int
    warehouse_id: int
    zone_id: Optional[int] = None
    quantity: int


class BinLocationUpdate(BaseModel):
    product_id: int
    warehouse_id: int
    zone_id: Optional[int] = None
    aisle: Optional[str] = Field(default=None, max_length=16)
    shelf: Optional[str] = Field(default=None, max_length=16)
    bin: Optional[str] = Field(default=None, max_length=16)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class LocationStockRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    warehouse_id: int
    zone_id: Optional[int] = None
    quantity: int
    reserved_quantity: int
    available_quantity: int
    aisle: Optional[str] = None
    shelf: Optional[str] = None
    bin: Optional[str] = None
    last_audit_date: Optional[datetime] = None


class StockLevelsRead(BaseModel):
    product_id: int
    sku: str
    total_quantity: int
    location_quantity: int
    locations: List[LocationStockRead] = []


class ReceiveResult(BaseModel):
    product_id: int
    total_quantity: int
    location: Optional[LocationStockRead] = None
    batch_id: Optional[int] = None
    movement_id: int


class SellResult(BaseModel):
    product_id: int
    total_quantity: int
    location: Optional[LocationStockRead] = None
    allocations: List[BatchAllocationRead] = []
    movement_id: int


class TransferResult(BaseModel):
    product_id: int
    total_quantity: int
    source: LocationStockRead
    destination: LocationStockRead
    movement_id: int


class AdjustResult(BaseModel):
    product_id: int
    total_quantity: int
    location: LocationStockRead
    movement_id: int


class MovementRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    movement_type: MovementTypeEnum
    quantity: int
    resulting_quantity: int
    from_warehouse_id: Optional[int] = None
    from_zone_id: Optional[int] = None
    to_warehouse_id: Optional[int] = None
    to_zone_id: Optional[int] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    actor_user_id: Optional[str] = None
    occurred_at: datetime


class StockAlertRead(BaseModel):
    product_id: int
    sku: str
    name: str
    quantity: int
    level: Literal["low", "critical"]
