from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from stockdb.apps.accounts import services as account_services
from stockdb.apps.accounts.models import Actor
from stockdb.apps.audit import services as audit_services
from stockdb.database import unit_of_work
from stockdb.errors import InvalidStateError, LocationMismatchError, NotFoundError, ValidationError

from . import models, schemas

logger = logging.getLogger(__name__)


def _normalize_code(code: str) -> str:
    return code.strip().upper()


def get_warehouse(db: Session, warehouse_id: int) -> models.Warehouse:
    warehouse = db.get(models.Warehouse, warehouse_id)
    if not warehouse:
        raise NotFoundError("Warehouse not found.", warehouse_id=warehouse_id)
    return warehouse


def resolve_location(
    db: Session,
    *,
    warehouse_id: Optional[int],
    zone_id: Optional[int],
    require_active: bool = False,
) -> Tuple[Optional[models.Warehouse], Optional[models.WarehouseZone]]:
    """
    Validate a (warehouse, zone) scope and return the rows.

    A zone needs its warehouse and must belong to it. With
    `require_active`, inactive locations are refused; stock may still
    leave them.
    """
    if zone_id is not None and warehouse_id is None:
        raise LocationMismatchError("A zone was given without its warehouse.", zone_id=zone_id)
    if warehouse_id is None:
        return None, None

    warehouse = get_warehouse(db, warehouse_id)
    zone = None
    if zone_id is not None:
        zone = db.get(models.WarehouseZone, zone_id)
        if not zone:
            raise NotFoundError("Zone not found.", zone_id=zone_id)
        if zone.warehouse_id != warehouse.id:
            raise LocationMismatchError(
                "Zone does not belong to the given warehouse.",
                warehouse_id=warehouse.id,
                zone_id=zone.id,
            )

    if require_active:
        if not warehouse.is_active:
            raise InvalidStateError("Warehouse is inactive.", warehouse_id=warehouse.id)
        if zone is not None and not zone.is_active:
            raise InvalidStateError("Zone is inactive.", zone_id=zone.id)
    return warehouse, zone


def create_warehouse(
    db: Session,
    *,
    actor: Actor,
    payload: schemas.WarehouseCreate,
) -> models.Warehouse:
    with unit_of_work(db):
        account_services.require_staff(actor, action="create warehouses")
        code = _normalize_code(payload.code)
        if db.query(models.Warehouse).filter(models.Warehouse.code == code).first():
            raise ValidationError(f"Warehouse code {code} already exists.", code=code)

        warehouse = models.Warehouse(code=code, name=payload.name.strip(), address=payload.address)
        db.add(warehouse)
        db.flush()
        audit_services.log_event(
            db,
            actor=actor,
            entity_type="warehouse",
            entity_id=warehouse.id,
            action="create",
            after={"code": code, "name": warehouse.name},
        )
    logger.info("Warehouse created", extra={"warehouse_id": warehouse.id, "code": code})
    return warehouse


def update_warehouse(
    db: Session,
    *,
    actor: Actor,
    warehouse_id: int,
    payload: schemas.WarehouseUpdate,
) -> models.Warehouse:
    with unit_of_work(db):
        account_services.require_staff(actor, action="update warehouses")
        warehouse = get_warehouse(db, warehouse_id)
        changes = payload.model_dump(exclude_unset=True)
        before = {key: getattr(warehouse, key) for key in changes}
        for key, value in changes.items():
            setattr(warehouse, key, value)
        db.flush()
        audit_services.log_event(
            db,
            actor=actor,
            entity_type="warehouse",
            entity_id=warehouse.id,
            action="update",
            before=before,
            after=changes,
        )
    return warehouse


def create_zone(
    db: Session,
    *,
    actor: Actor,
    warehouse_id: int,
    payload: schemas.ZoneCreate,
) -> models.WarehouseZone:
    with unit_of_work(db):
        account_services.require_staff(actor, action="create zones")
        warehouse = get_warehouse(db, warehouse_id)
        code = _normalize_code(payload.code)
        existing = (
            db.query(models.WarehouseZone)
            .filter(
                models.WarehouseZone.warehouse_id == warehouse.id,
                models.WarehouseZone.code == code,
            )
            .first()
        )
        if existing:
            raise ValidationError(
                f"Zone {code} already exists in warehouse {warehouse.code}.",
                warehouse_id=warehouse.id,
                code=code,
            )

        zone = models.WarehouseZone(
            warehouse_id=warehouse.id,
            code=code,
            name=payload.name.strip(),
            zone_type=payload.zone_type,
        )
        db.add(zone)
        db.flush()
        audit_services.log_event(
            db,
            actor=actor,
            entity_type="warehouse_zone",
            entity_id=zone.id,
            action="create",
            after={"warehouse_id": warehouse.id, "code": code, "zone_type": zone.zone_type},
        )
    logger.info("Zone created", extra={"warehouse_id": warehouse.id, "zone_id": zone.id, "code": code})
    return zone


def list_warehouses(db: Session, *, include_inactive: bool = False) -> List[models.Warehouse]:
    query = db.query(models.Warehouse)
    if not include_inactive:
        query = query.filter(models.Warehouse.is_active.is_(True))
    return query.order_by(models.Warehouse.code.asc()).all()
