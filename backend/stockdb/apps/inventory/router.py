from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from stockdb.apps.accounts.models import Actor
from stockdb.database import get_db, get_read_db
from stockdb.security import WRITE_ROLES, get_current_actor, require_roles

from . import schemas, services

router = APIRouter(prefix="", tags=["inventory"])


@router.post("/products", response_model=schemas.ProductRead, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: schemas.ProductCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.create_product(db, actor=actor, payload=payload)


@router.get("/products", response_model=List[schemas.ProductRead])
def list_products(
    search: Optional[str] = None,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.list_products(db, search=search)


@router.get("/products/{product_id}/stock", response_model=schemas.StockLevelsRead)
def get_stock_levels(
    product_id: int,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.get_stock_levels(db, product_id=product_id)


@router.post(
    "/inventory/receive",
    response_model=schemas.ReceiveResult,
    status_code=status.HTTP_201_CREATED,
)
def receive_stock(
    payload: schemas.StockReceiveRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.receive_stock(db, actor=actor, payload=payload)


@router.post("/inventory/sell", response_model=schemas.SellResult)
def sell_stock(
    payload: schemas.StockSellRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.sell_stock(db, actor=actor, payload=payload)


@router.post("/inventory/transfer", response_model=schemas.TransferResult)
def transfer_stock(
    payload: schemas.StockTransferRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.transfer_stock(db, actor=actor, payload=payload)


@router.post("/inventory/adjust", response_model=schemas.AdjustResult)
def adjust_stock(
    payload: schemas.StockAdjustRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.adjust_location_stock(db, actor=actor, payload=payload)


@router.post("/inventory/reserve", response_model=schemas.LocationStockRead)
def reserve_stock(
    payload: schemas.ReservationRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.reserve_stock(db, actor=actor, payload=payload)


@router.post("/inventory/release", response_model=schemas.LocationStockRead)
def release_reservation(
    payload: schemas.ReservationRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.release_reservation(db, actor=actor, payload=payload)


@router.put("/inventory/bin-location", response_model=schemas.LocationStockRead)
def update_bin_location(
    payload: schemas.BinLocationUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.update_bin_location(db, actor=actor, payload=payload)


@router.get("/inventory/movements", response_model=List[schemas.MovementRead])
def list_movements(
    product_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
    limit: int = 100,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.list_movements(db, product_id=product_id, warehouse_id=warehouse_id, limit=limit)


@router.get("/inventory/alerts", response_model=List[schemas.StockAlertRead])
def list_stock_alerts(
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.list_stock_alerts(db)
