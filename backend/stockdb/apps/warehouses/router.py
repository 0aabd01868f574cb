from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from stockdb.apps.accounts.models import Actor
from stockdb.database import get_db, get_read_db
from stockdb.security import WRITE_ROLES, get_current_actor, require_roles

from . import schemas, services

router = APIRouter(prefix="/warehouses", tags=["warehouses"])


@router.get("", response_model=List[schemas.WarehouseRead])
def list_warehouses(
    include_inactive: bool = False,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.list_warehouses(db, include_inactive=include_inactive)


@router.post("", response_model=schemas.WarehouseRead, status_code=status.HTTP_201_CREATED)
def create_warehouse(
    payload: schemas.WarehouseCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.create_warehouse(db, actor=actor, payload=payload)


@router.patch("/{warehouse_id}", response_model=schemas.WarehouseRead)
def update_warehouse(
    warehouse_id: int,
    payload: schemas.WarehouseUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.update_warehouse(db, actor=actor, warehouse_id=warehouse_id, payload=payload)


@router.post(
    "/{warehouse_id}/zones",
    response_model=schemas.ZoneRead,
    status_code=status.HTTP_201_CREATED,
)
def create_zone(
    warehouse_id: int,
    payload: schemas.ZoneCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.create_zone(db, actor=actor, warehouse_id=warehouse_id, payload=payload)
