from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from stockdb.apps.accounts.models import Actor
from stockdb.database import get_db, get_read_db
from stockdb.security import WRITE_ROLES, get_current_actor, require_roles

from . import models, schemas, services

router = APIRouter(prefix="/batches", tags=["batches"])


@router.get("", response_model=List[schemas.BatchRead])
def list_batches(
    product_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
    status: Optional[models.BatchStatusEnum] = None,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.list_batches(db, product_id=product_id, warehouse_id=warehouse_id, status=status)


@router.post("", response_model=schemas.BatchRead, status_code=status.HTTP_201_CREATED)
def create_batch(
    payload: schemas.BatchCreateRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.create_batch(db, actor=actor, payload=payload)


@router.post("/consume", response_model=List[schemas.BatchAllocationRead])
def consume_batches(
    payload: schemas.BatchConsumeRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    applied = services.consume(
        db,
        actor=actor,
        product_id=payload.product_id,
        warehouse_id=payload.warehouse_id,
        zone_id=payload.zone_id,
        quantity=payload.quantity,
    )
    return [services.allocation_read(batch, taken) for batch, taken in applied]


@router.get("/expiring", response_model=List[schemas.BatchRead])
def list_expiring_batches(
    days_ahead: Optional[int] = None,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.list_expiring_batches(db, days_ahead=days_ahead)


@router.get("/fifo/{product_id}", response_model=Optional[schemas.BatchRead])
def get_fifo_batch(
    product_id: int,
    warehouse_id: Optional[int] = None,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.get_fifo_batch(db, product_id=product_id, warehouse_id=warehouse_id)


@router.get("/by-number/{batch_number}", response_model=List[schemas.BatchRead])
def get_batches_by_number(
    batch_number: str,
    product_id: Optional[int] = None,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.get_batches_by_number(db, batch_number=batch_number, product_id=product_id)


@router.get("/{batch_id}", response_model=schemas.BatchRead)
def get_batch(
    batch_id: int,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.get_batch(db, batch_id)
