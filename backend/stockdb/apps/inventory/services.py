from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from stockdb.apps.accounts import services as account_services
from stockdb.apps.accounts.models import Actor
from stockdb.apps.audit import services as audit_services
from stockdb.apps.batches import services as batch_services
from stockdb.apps.warehouses import services as warehouse_services
from stockdb.database import unit_of_work
from stockdb.errors import (
    InsufficientStockError,
    LocationMismatchError,
    NotFoundError,
    ValidationError,
)

from . import models, schemas

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = int(os.getenv("LOW_STOCK_THRESHOLD", "5"))
CRITICAL_STOCK_THRESHOLD = int(os.getenv("CRITICAL_STOCK_THRESHOLD", "1"))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_positive(quantity: int, *, field: str = "quantity") -> None:
    if quantity is None or quantity <= 0:
        raise ValidationError(f"{field} must be greater than zero.", **{field: quantity})


def get_product(db: Session, product_id: int) -> models.Product:
    product = db.get(models.Product, product_id)
    if not product:
        raise NotFoundError("Product not found.", product_id=product_id)
    return product


def _lock_record(db: Session, product: models.Product) -> models.InventoryRecord:
    record = (
        db.query(models.InventoryRecord)
        .filter(models.InventoryRecord.product_id == product.id)
        .with_for_update()
        .first()
    )
    if record is None:
        record = models.InventoryRecord(product_id=product.id, quantity=0)
        db.add(record)
        db.flush()
    return record


def _find_location(
    db: Session,
    *,
    product_id: int,
    warehouse_id: int,
    zone_id: Optional[int],
    lock: bool = True,
) -> Optional[models.LocationStock]:
    query = db.query(models.LocationStock).filter(
        models.LocationStock.product_id == product_id,
        models.LocationStock.warehouse_id == warehouse_id,
    )
    if zone_id is None:
        query = query.filter(models.LocationStock.zone_id.is_(None))
    else:
        query = query.filter(models.LocationStock.zone_id == zone_id)
    if lock:
        query = query.with_for_update()
    return query.first()


def _get_or_create_location(
    db: Session,
    *,
    product_id: int,
    warehouse_id: int,
    zone_id: Optional[int],
) -> models.LocationStock:
    location = _find_location(db, product_id=product_id, warehouse_id=warehouse_id, zone_id=zone_id)
    if location is None:
        location = models.LocationStock(
            product_id=product_id,
            warehouse_id=warehouse_id,
            zone_id=zone_id,
            quantity=0,
            reserved_quantity=0,
        )
        db.add(location)
        db.flush()
    return location


def _is_location_tracked(db: Session, product_id: int) -> bool:
    return (
        db.query(models.LocationStock.id)
        .filter(models.LocationStock.product_id == product_id)
        .first()
        is not None
    )


def _require_location_scope(db: Session, *, product: models.Product, operation: str) -> None:
    # An aggregate-only change on a location-tracked product would break
    # aggregate == sum(locations).
    if _is_location_tracked(db, product.id):
        raise LocationMismatchError(
            f"Product {product.sku} is tracked by location; {operation} needs a warehouse.",
            product_id=product.id,
        )


def _record_movement(
    db: Session,
    *,
    product: models.Product,
    movement_type: models.MovementTypeEnum,
    quantity: int,
    resulting_quantity: int,
    actor: Actor,
    from_location: Optional[models.LocationStock] = None,
    to_location: Optional[models.LocationStock] = None,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
) -> models.InventoryMovement:
    movement = models.InventoryMovement(
        product_id=product.id,
        movement_type=movement_type,
        quantity=quantity,
        resulting_quantity=resulting_quantity,
        from_warehouse_id=from_location.warehouse_id if from_location else None,
        from_zone_id=from_location.zone_id if from_location else None,
        to_warehouse_id=to_location.warehouse_id if to_location else None,
        to_zone_id=to_location.zone_id if to_location else None,
        reference=reference,
        notes=notes,
        actor_user_id=actor.user_id,
    )
    db.add(movement)
    db.flush()
    return movement


def _location_read(location: Optional[models.LocationStock]) -> Optional[schemas.LocationStockRead]:
    if location is None:
        return None
    return schemas.LocationStockRead.model_validate(location)


def _insufficient(
    *,
    product: models.Product,
    available: int,
    requested: int,
    operation: str,
    warehouse_id: Optional[int] = None,
    zone_id: Optional[int] = None,
) -> InsufficientStockError:
    logger.warning(
        "Insufficient stock",
        extra={
            "product_id": product.id,
            "operation": operation,
            "available": available,
            "requested": requested,
            "warehouse_id": warehouse_id,
            "zone_id": zone_id,
        },
    )
    return InsufficientStockError(
        f"Insufficient stock for {product.sku}: {available} available, {requested} requested.",
        available=available,
        requested=requested,
        product_id=product.id,
    )


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


def create_product(
    db: Session,
    *,
    actor: Actor,
    payload: schemas.ProductCreate,
) -> models.Product:
    with unit_of_work(db):
        account_services.require_staff(actor, action="create products")
        sku = payload.sku.strip().upper()
        if db.query(models.Product).filter(models.Product.sku == sku).first():
            raise ValidationError(f"SKU {sku} already exists.", sku=sku)

        product = models.Product(
            sku=sku,
            name=payload.name.strip(),
            description=payload.description,
            unit_price=payload.unit_price,
        )
        product.inventory = models.InventoryRecord(quantity=0)
        db.add(product)
        db.flush()
        audit_services.log_event(
            db,
            actor=actor,
            entity_type="product",
            entity_id=product.id,
            action="create",
            after={"sku": sku, "name": product.name, "unit_price": product.unit_price},
        )
    logger.info("Product created", extra={"product_id": product.id, "sku": sku})
    return product


def list_products(db: Session, *, search: Optional[str] = None) -> List[models.Product]:
    query = db.query(models.Product)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(models.Product.sku.ilike(pattern) | models.Product.name.ilike(pattern))
    return query.order_by(models.Product.sku.asc()).all()


# ---------------------------------------------------------------------------
# Ledger operations
# ---------------------------------------------------------------------------


def receive_stock(
    db: Session,
    *,
    actor: Actor,
    payload: schemas.StockReceiveRequest,
) -> schemas.ReceiveResult:
    """
    Add received units to the aggregate and, when scoped, to a location.

    With batch fields the receipt also opens a batch holding the same
    quantity. Batches need a warehouse.
    """
    with unit_of_work(db):
        account_services.require_staff(actor, action="receive stock")
        _require_positive(payload.quantity)
        product = get_product(db, payload.product_id)
        if payload.batch is not None and payload.warehouse_id is None:
            raise LocationMismatchError(
                "Batch tracking requires a warehouse.",
                batch_number=payload.batch.batch_number,
            )
        warehouse, zone = warehouse_services.resolve_location(
            db,
            warehouse_id=payload.warehouse_id,
            zone_id=payload.zone_id,
            require_active=True,
        )
        if payload.batch is not None:
            batch_services.check_batch_info(
                db,
                product_id=product.id,
                warehouse_id=warehouse.id,
                zone_id=zone.id if zone else None,
                info=payload.batch,
            )

        record = _lock_record(db, product)
        location = None
        if warehouse is None:
            _require_location_scope(db, product=product, operation="receive")
        else:
            location = _get_or_create_location(
                db,
                product_id=product.id,
                warehouse_id=warehouse.id,
                zone_id=zone.id if zone else None,
            )
            location.quantity += payload.quantity
        record.quantity += payload.quantity

        batch = None
        if payload.batch is not None:
            batch = batch_services.open_batch(
                db,
                actor=actor,
                product=product,
                warehouse_id=warehouse.id,
                zone_id=zone.id if zone else None,
                info=payload.batch,
                quantity=payload.quantity,
            )

        db.flush()
        movement = _record_movement(
            db,
            product=product,
            movement_type=models.MovementTypeEnum.RECEIVE,
            quantity=payload.quantity,
            resulting_quantity=record.quantity,
            actor=actor,
            to_location=location,
            reference=payload.reference,
            notes=payload.notes,
        )
        audit_services.log_event(
            db,
            actor=actor,
            entity_type="product",
            entity_id=product.id,
            action="receive_stock",
            after={
                "quantity": payload.quantity,
                "total_quantity": record.quantity,
                "warehouse_id": payload.warehouse_id,
                "zone_id": payload.zone_id,
                "batch_number": batch.batch_number if batch else None,
                "movement_id": movement.id,
            },
        )
        result = schemas.ReceiveResult(
            product_id=product.id,
            total_quantity=record.quantity,
            location=_location_read(location),
            batch_id=batch.id if batch else None,
            movement_id=movement.id,
        )

    logger.info(
        "Stock received",
        extra={
            "product_id": product.id,
            "quantity": payload.quantity,
            "warehouse_id": payload.warehouse_id,
            "zone_id": payload.zone_id,
            "user_id": actor.user_id,
        },
    )
    return result


def sell_stock(
    db: Session,
    *,
    actor: Actor,
    payload: schemas.StockSellRequest,
) -> schemas.SellResult:
    """
    Remove sold units.

    Availability is re-read under row locks in the same transaction that
    decrements it. A location-scoped sale checks quantity minus reserved
    at that location and then draws batches FIFO.
    """
    with unit_of_work(db):
        account_services.require_staff(actor, action="sell stock")
        _require_positive(payload.quantity)
        product = get_product(db, payload.product_id)
        warehouse, zone = warehouse_services.resolve_location(
            db,
            warehouse_id=payload.warehouse_id,
            zone_id=payload.zone_id,
        )

        record = _lock_record(db, product)
        location = None
        if warehouse is None:
            _require_location_scope(db, product=product, operation="sale")
            available = record.quantity
        else:
            location = _find_location(
                db,
                product_id=product.id,
                warehouse_id=warehouse.id,
                zone_id=zone.id if zone else None,
            )
            available = location.available_quantity if location else 0
            available = min(available, record.quantity)

        if payload.quantity > available:
            raise _insufficient(
                product=product,
                available=available,
                requested=payload.quantity,
                operation="sale",
                warehouse_id=payload.warehouse_id,
                zone_id=payload.zone_id,
            )

        record.quantity -= payload.quantity
        allocations = []
        if location is not None:
            location.quantity -= payload.quantity
            applied = batch_services.consume(
                db,
                actor=actor,
                product_id=product.id,
                warehouse_id=location.warehouse_id,
                zone_id=location.zone_id,
                quantity=payload.quantity,
            )
            allocations = [batch_services.allocation_read(batch, taken) for batch, taken in applied]

        db.flush()
        movement = _record_movement(
            db,
            product=product,
            movement_type=models.MovementTypeEnum.SALE,
            quantity=-payload.quantity,
            resulting_quantity=record.quantity,
            actor=actor,
            from_location=location,
            reference=payload.reference,
            notes=payload.notes,
        )
        audit_services.log_event(
            db,
            actor=actor,
            entity_type="product",
            entity_id=product.id,
            action="sell_stock",
            after={
                "quantity": payload.quantity,
                "total_quantity": record.quantity,
                "warehouse_id": payload.warehouse_id,
                "zone_id": payload.zone_id,
                "batches": [a.model_dump() for a in allocations],
                "movement_id": movement.id,
            },
        )
        result = schemas.SellResult(
            product_id=product.id,
            total_quantity=record.quantity,
            location=_location_read(location),
            allocations=allocations,
            movement_id=movement.id,
        )

    logger.info(
        "Stock sold",
        extra={
            "product_id": product.id,
            "quantity": payload.quantity,
            "warehouse_id": payload.warehouse_id,
            "zone_id": payload.zone_id,
            "user_id": actor.user_id,
        },
    )
    return result


def transfer_stock(
    db: Session,
    *,
    actor: Actor,
    payload: schemas.StockTransferRequest,
) -> schemas.TransferResult:
    """Move units between two locations. The aggregate does not change."""
    with unit_of_work(db):
        account_services.require_staff(actor, action="transfer stock")
        _require_positive(payload.quantity)
        source_ref = payload.from_location
        dest_ref = payload.to_location
        if (source_ref.warehouse_id, source_ref.zone_id) == (dest_ref.warehouse_id, dest_ref.zone_id):
            raise ValidationError(
                "Source and destination are the same location.",
                warehouse_id=source_ref.warehouse_id,
                zone_id=source_ref.zone_id,
            )
        product = get_product(db, payload.product_id)
        warehouse_services.resolve_location(
            db,
            warehouse_id=source_ref.warehouse_id,
            zone_id=source_ref.zone_id,
        )
        warehouse_services.resolve_location(
            db,
            warehouse_id=dest_ref.warehouse_id,
            zone_id=dest_ref.zone_id,
            require_active=True,
        )

        record = _lock_record(db, product)
        source = _find_location(
            db,
            product_id=product.id,
            warehouse_id=source_ref.warehouse_id,
            zone_id=source_ref.zone_id,
        )
        available = source.available_quantity if source else 0
        if payload.quantity > available:
            raise _insufficient(
                product=product,
                available=available,
                requested=payload.quantity,
                operation="transfer",
                warehouse_id=source_ref.warehouse_id,
                zone_id=source_ref.zone_id,
            )

        destination = _get_or_create_location(
            db,
            product_id=product.id,
            warehouse_id=dest_ref.warehouse_id,
            zone_id=dest_ref.zone_id,
        )
        source.quantity -= payload.quantity
        destination.quantity += payload.quantity
        db.flush()

        movement = _record_movement(
            db,
            product=product,
            movement_type=models.MovementTypeEnum.TRANSFER,
            quantity=payload.quantity,
            resulting_quantity=record.quantity,
            actor=actor,
            from_location=source,
            to_location=destination,
            reference=payload.reference,
            notes=payload.notes,
        )
        audit_services.log_event(
            db,
            actor=actor,
            entity_type="product",
            entity_id=product.id,
            action="transfer_stock",
            before={
                "source_quantity": source.quantity + payload.quantity,
                "destination_quantity": destination.quantity - payload.quantity,
            },
            after={
                "quantity": payload.quantity,
                "from": source_ref.model_dump(),
                "to": dest_ref.model_dump(),
                "source_quantity": source.quantity,
                "destination_quantity": destination.quantity,
                "movement_id": movement.id,
            },
        )
        result = schemas.TransferResult(
            product_id=product.id,
            total_quantity=record.quantity,
            source=_location_read(source),
            destination=_location_read(destination),
            movement_id=movement.id,
        )

    logger.info(
        "Stock transferred",
        extra={
            "product_id": product.id,
            "quantity": payload.quantity,
            "from_warehouse_id": source_ref.warehouse_id,
            "to_warehouse_id": dest_ref.warehouse_id,
            "user_id": actor.user_id,
        },
    )
    return result


def adjust_location_stock(
    db: Session,
    *,
    actor: Actor,
    payload: schemas.StockAdjustRequest,
) -> schemas.AdjustResult:
    """
    Apply a signed correction to one location and the aggregate.

    Used by audit reconciliation. Never takes a location below its
    reserved quantity.
    """
    with unit_of_work(db):
        account_services.require_staff(actor, action="adjust stock")
        if not payload.quantity_delta:
            raise ValidationError("quantity_delta must be non-zero.", quantity_delta=payload.quantity_delta)
        if not (payload.reason or "").strip():
            raise ValidationError("An adjustment reason is required.")
        product = get_product(db, payload.product_id)
        warehouse_services.resolve_location(
            db,
            warehouse_id=payload.warehouse_id,
            zone_id=payload.zone_id,
        )

        record = _lock_record(db, product)
        location = _find_location(
            db,
            product_id=product.id,
            warehouse_id=payload.warehouse_id,
            zone_id=payload.zone_id,
        )
        delta = payload.quantity_delta
        if delta < 0:
            available = location.available_quantity if location else 0
            available = min(available, record.quantity)
            if -delta > available:
                raise _insufficient(
                    product=product,
                    available=available,
                    requested=-delta,
                    operation="adjustment",
                    warehouse_id=payload.warehouse_id,
                    zone_id=payload.zone_id,
                )
        if location is None:
            location = _get_or_create_location(
                db,
                product_id=product.id,
                warehouse_id=payload.warehouse_id,
                zone_id=payload.zone_id,
            )

        before_quantity = location.quantity
        location.quantity += delta
        record.quantity += delta
        db.flush()

        movement = _record_movement(
            db,
            product=product,
            movement_type=models.MovementTypeEnum.ADJUSTMENT,
            quantity=delta,
            resulting_quantity=record.quantity,
            actor=actor,
            from_location=location if delta < 0 else None,
            to_location=location if delta > 0 else None,
            reference=payload.reference,
            notes=payload.reason.strip(),
        )
        audit_services.log_event(
            db,
            actor=actor,
            entity_type="product",
            entity_id=product.id,
            action="adjust_stock",
            before={"location_quantity": before_quantity},
            after={
                "location_quantity": location.quantity,
                "total_quantity": record.quantity,
                "quantity_delta": delta,
                "reason": payload.reason.strip(),
                "warehouse_id": payload.warehouse_id,
                "zone_id": payload.zone_id,
                "movement_id": movement.id,
            },
        )
        result = schemas.AdjustResult(
            product_id=product.id,
            total_quantity=record.quantity,
            location=_location_read(location),
            movement_id=movement.id,
        )

    logger.info(
        "Stock adjusted",
        extra={"product_id": product.id, "quantity_delta": delta, "user_id": actor.user_id},
    )
    return result


def _require_existing_location(db: Session, *, product_id: int, warehouse_id: int, zone_id: Optional[int]):
    get_product(db, product_id)
    warehouse_services.resolve_location(db, warehouse_id=warehouse_id, zone_id=zone_id)
    location = _find_location(db, product_id=product_id, warehouse_id=warehouse_id, zone_id=zone_id)
    if location is None:
        raise NotFoundError(
            "No stock recorded for this product at the location.",
            product_id=product_id,
            warehouse_id=warehouse_id,
            zone_id=zone_id,
        )
    return location


def reserve_stock(
    db: Session,
    *,
    actor: Actor,
    payload: schemas.ReservationRequest,
) -> models.LocationStock:
    with unit_of_work(db):
        account_services.require_staff(actor, action="reserve stock")
        _require_positive(payload.quantity)
        location = _require_existing_location(
            db,
            product_id=payload.product_id,
            warehouse_id=payload.warehouse_id,
            zone_id=payload.zone_id,
        )
        if payload.quantity > location.available_quantity:
            raise _insufficient(
                product=location.product,
                available=location.available_quantity,
                requested=payload.quantity,
                operation="reservation",
                warehouse_id=payload.warehouse_id,
                zone_id=payload.zone_id,
            )
        location.reserved_quantity += payload.quantity
        db.flush()
        audit_services.log_event(
            db,
            actor=actor,
            entity_type="location_stock",
            entity_id=location.id,
            action="reserve_stock",
            after={"quantity": payload.quantity, "reserved_quantity": location.reserved_quantity},
        )
    return location


def release_reservation(
    db: Session,
    *,
    actor: Actor,
    payload: schemas.ReservationRequest,
) -> models.LocationStock:
    with unit_of_work(db):
        account_services.require_staff(actor, action="release reservations")
        _require_positive(payload.quantity)
        location = _require_existing_location(
            db,
            product_id=payload.product_id,
            warehouse_id=payload.warehouse_id,
            zone_id=payload.zone_id,
        )
        if payload.quantity > location.reserved_quantity:
            raise ValidationError(
                "Cannot release more than is reserved.",
                reserved=location.reserved_quantity,
                requested=payload.quantity,
            )
        location.reserved_quantity -= payload.quantity
        db.flush()
        audit_services.log_event(
            db,
            actor=actor,
            entity_type="location_stock",
            entity_id=location.id,
            action="release_reservation",
            after={"quantity": payload.quantity, "reserved_quantity": location.reserved_quantity},
        )
    return location


def update_bin_location(
    db: Session,
    *,
    actor: Actor,
    payload: schemas.BinLocationUpdate,
) -> models.LocationStock:
    with unit_of_work(db):
        account_services.require_staff(actor, action="update bin locations")
        location = _require_existing_location(
            db,
            product_id=payload.product_id,
            warehouse_id=payload.warehouse_id,
            zone_id=payload.zone_id,
        )
        before = {"aisle": location.aisle, "shelf": location.shelf, "bin": location.bin}
        location.aisle = payload.aisle
        location.shelf = payload.shelf
        location.bin = payload.bin
        db.flush()
        audit_services.log_event(
            db,
            actor=actor,
            entity_type="location_stock",
            entity_id=location.id,
            action="update_bin_location",
            before=before,
            after={"aisle": location.aisle, "shelf": location.shelf, "bin": location.bin},
        )
    return location


def stamp_last_audit(db: Session, *, location_ids: Iterable[int], audited_at: datetime) -> int:
    """Set last_audit_date on the given rows. Joins the caller's unit of work."""
    ids = list(set(location_ids))
    if not ids:
        return 0
    locations = (
        db.query(models.LocationStock)
        .filter(models.LocationStock.id.in_(ids))
        .with_for_update()
        .all()
    )
    for location in locations:
        location.last_audit_date = audited_at
    db.flush()
    return len(locations)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def get_stock_levels(db: Session, *, product_id: int) -> schemas.StockLevelsRead:
    product = get_product(db, product_id)
    locations = (
        db.query(models.LocationStock)
        .filter(models.LocationStock.product_id == product.id)
        .order_by(models.LocationStock.warehouse_id.asc(), models.LocationStock.zone_id.asc())
        .all()
    )
    total = product.inventory.quantity if product.inventory else 0
    return schemas.StockLevelsRead(
        product_id=product.id,
        sku=product.sku,
        total_quantity=total,
        location_quantity=sum(loc.quantity for loc in locations),
        locations=[schemas.LocationStockRead.model_validate(loc) for loc in locations],
    )


def list_movements(
    db: Session,
    *,
    product_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
    limit: int = 100,
) -> List[models.InventoryMovement]:
    query = db.query(models.InventoryMovement)
    if product_id is not None:
        query = query.filter(models.InventoryMovement.product_id == product_id)
    if warehouse_id is not None:
        query = query.filter(
            (models.InventoryMovement.from_warehouse_id == warehouse_id)
            | (models.InventoryMovement.to_warehouse_id == warehouse_id)
        )
    return (
        query.order_by(models.InventoryMovement.occurred_at.desc(), models.InventoryMovement.id.desc())
        .limit(limit)
        .all()
    )


def list_stock_alerts(db: Session) -> List[schemas.StockAlertRead]:
    rows = (
        db.query(models.Product, models.InventoryRecord.quantity)
        .join(models.InventoryRecord, models.InventoryRecord.product_id == models.Product.id)
        .filter(
            models.Product.is_active.is_(True),
            models.InventoryRecord.quantity <= LOW_STOCK_THRESHOLD,
        )
        .order_by(models.InventoryRecord.quantity.asc(), models.Product.sku.asc())
        .all()
    )
    return [
        schemas.StockAlertRead(
            product_id=product.id,
            sku=product.sku,
            name=product.name,
            quantity=quantity,
            level="critical" if quantity <= CRITICAL_STOCK_THRESHOLD else "low",
        )
        for product, quantity in rows
    ]
