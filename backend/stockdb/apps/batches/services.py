from __future__ import annotations

import logging
import os
from datetime import date, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from stockdb.apps.accounts import services as account_services
from stockdb.apps.accounts.models import Actor
from stockdb.database import unit_of_work
from stockdb.errors import NotFoundError, ValidationError

from . import models, schemas

logger = logging.getLogger(__name__)

EXPIRY_WINDOW_DAYS = int(os.getenv("BATCH_EXPIRY_WINDOW_DAYS", "30"))


def _scope_filter(query, *, product_id: int, warehouse_id: int, zone_id: Optional[int]):
    query = query.filter(
        models.Batch.product_id == product_id,
        models.Batch.warehouse_id == warehouse_id,
    )
    if zone_id is None:
        return query.filter(models.Batch.zone_id.is_(None))
    return query.filter(models.Batch.zone_id == zone_id)


def _fifo_order(query):
    # received_date first, then creation order
    return query.order_by(models.Batch.received_date.asc(), models.Batch.id.asc())


def check_batch_info(
    db: Session,
    *,
    product_id: int,
    warehouse_id: int,
    zone_id: Optional[int],
    info: schemas.BatchInfo,
) -> None:
    received = info.received_date or date.today()
    if info.expiry_date is not None and info.expiry_date < received:
        raise ValidationError(
            "Expiry date is before the received date.",
            batch_number=info.batch_number,
            expiry_date=info.expiry_date.isoformat(),
        )
    duplicate = _scope_filter(
        db.query(models.Batch.id).filter(models.Batch.batch_number == info.batch_number.strip()),
        product_id=product_id,
        warehouse_id=warehouse_id,
        zone_id=zone_id,
    ).first()
    if duplicate:
        raise ValidationError(
            f"Batch {info.batch_number} already exists at this location.",
            batch_number=info.batch_number,
        )


def open_batch(
    db: Session,
    *,
    actor: Actor,
    product,
    warehouse_id: int,
    zone_id: Optional[int],
    info: schemas.BatchInfo,
    quantity: int,
) -> models.Batch:
    """Create the batch row for a receipt. Called from the ledger's receive path."""
    check_batch_info(db, product_id=product.id, warehouse_id=warehouse_id, zone_id=zone_id, info=info)
    batch = models.Batch(
        product_id=product.id,
        warehouse_id=warehouse_id,
        zone_id=zone_id,
        batch_number=info.batch_number.strip(),
        lot_number=info.lot_number,
        supplier=info.supplier,
        quantity_received=quantity,
        quantity_remaining=quantity,
        quantity_sold=0,
        received_date=info.received_date or date.today(),
        expiry_date=info.expiry_date,
        status=models.BatchStatusEnum.ACTIVE,
        notes=info.notes,
        created_by_user_id=actor.user_id,
    )
    db.add(batch)
    db.flush()
    return batch


def allocation_read(batch: models.Batch, taken: int) -> schemas.BatchAllocationRead:
    return schemas.BatchAllocationRead(
        batch_id=batch.id,
        batch_number=batch.batch_number,
        quantity_taken=taken,
        quantity_remaining=batch.quantity_remaining,
        status=batch.status,
    )


def consume(
    db: Session,
    *,
    actor: Actor,
    product_id: int,
    warehouse_id: int,
    zone_id: Optional[int],
    quantity: int,
) -> List[Tuple[models.Batch, int]]:
    """
    Draw `quantity` from the scope's active batches, oldest first.

    Returns the (batch, taken) pairs actually applied. When the batches
    hold less than requested the remainder is left unallocated: the
    ledger has already checked stock, and batches only trace where it
    came from. The shortfall is logged, not raised.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be greater than zero.", quantity=quantity)

    with unit_of_work(db):
        account_services.require_staff(actor, action="consume batches")
        batches = (
            _fifo_order(
                _scope_filter(
                    db.query(models.Batch).filter(models.Batch.status == models.BatchStatusEnum.ACTIVE),
                    product_id=product_id,
                    warehouse_id=warehouse_id,
                    zone_id=zone_id,
                )
            )
            .with_for_update()
            .all()
        )

        applied: List[Tuple[models.Batch, int]] = []
        outstanding = quantity
        for batch in batches:
            if outstanding <= 0:
                break
            taken = min(batch.quantity_remaining, outstanding)
            if taken <= 0:
                continue
            batch.quantity_remaining -= taken
            batch.quantity_sold = (batch.quantity_sold or 0) + taken
            if batch.quantity_remaining == 0:
                batch.status = models.BatchStatusEnum.DEPLETED
            applied.append((batch, taken))
            outstanding -= taken
        db.flush()

    if outstanding > 0:
        logger.warning(
            "Batch allocation short of requested quantity",
            extra={
                "product_id": product_id,
                "warehouse_id": warehouse_id,
                "zone_id": zone_id,
                "requested": quantity,
                "unallocated": outstanding,
            },
        )
    if applied:
        logger.info(
            "Batches consumed",
            extra={
                "product_id": product_id,
                "batches": [batch.batch_number for batch, _ in applied],
                "quantity": quantity - outstanding,
            },
        )
    return applied


def create_batch(
    db: Session,
    *,
    actor: Actor,
    payload: schemas.BatchCreateRequest,
) -> models.Batch:
    """Receive stock into a new batch through the ledger."""
    from stockdb.apps.inventory import schemas as inventory_schemas
    from stockdb.apps.inventory import services as inventory_services

    result = inventory_services.receive_stock(
        db,
        actor=actor,
        payload=inventory_schemas.StockReceiveRequest(
            product_id=payload.product_id,
            quantity=payload.quantity,
            warehouse_id=payload.warehouse_id,
            zone_id=payload.zone_id,
            batch=schemas.BatchInfo(
                batch_number=payload.batch_number,
                lot_number=payload.lot_number,
                supplier=payload.supplier,
                received_date=payload.received_date,
                expiry_date=payload.expiry_date,
                notes=payload.notes,
            ),
            reference=f"BATCH:{payload.batch_number}",
        ),
    )
    return db.get(models.Batch, result.batch_id)


def get_batch(db: Session, batch_id: int) -> models.Batch:
    batch = db.get(models.Batch, batch_id)
    if not batch:
        raise NotFoundError("Batch not found.", batch_id=batch_id)
    return batch


def get_batches_by_number(
    db: Session,
    *,
    batch_number: str,
    product_id: Optional[int] = None,
) -> List[models.Batch]:
    query = db.query(models.Batch).filter(models.Batch.batch_number == batch_number.strip())
    if product_id is not None:
        query = query.filter(models.Batch.product_id == product_id)
    batches = _fifo_order(query).all()
    if not batches:
        raise NotFoundError("Batch not found.", batch_number=batch_number)
    return batches


def get_fifo_batch(
    db: Session,
    *,
    product_id: int,
    warehouse_id: Optional[int] = None,
) -> Optional[models.Batch]:
    """The batch FIFO consumption would draw from next."""
    query = db.query(models.Batch).filter(
        models.Batch.product_id == product_id,
        models.Batch.status == models.BatchStatusEnum.ACTIVE,
        models.Batch.quantity_remaining > 0,
    )
    if warehouse_id is not None:
        query = query.filter(models.Batch.warehouse_id == warehouse_id)
    return _fifo_order(query).first()


def list_expiring_batches(
    db: Session,
    *,
    days_ahead: Optional[int] = None,
    today: Optional[date] = None,
) -> List[models.Batch]:
    today = today or date.today()
    window = EXPIRY_WINDOW_DAYS if days_ahead is None else days_ahead
    if window < 0:
        raise ValidationError("days_ahead must not be negative.", days_ahead=window)
    return (
        db.query(models.Batch)
        .filter(
            models.Batch.status == models.BatchStatusEnum.ACTIVE,
            models.Batch.expiry_date.isnot(None),
            models.Batch.expiry_date >= today,
            models.Batch.expiry_date <= today + timedelta(days=window),
        )
        .order_by(models.Batch.expiry_date.asc(), models.Batch.id.asc())
        .all()
    )


def list_batches(
    db: Session,
    *,
    product_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
    status: Optional[models.BatchStatusEnum] = None,
) -> List[models.Batch]:
    query = db.query(models.Batch)
    if product_id is not None:
        query = query.filter(models.Batch.product_id == product_id)
    if warehouse_id is not None:
        query = query.filter(models.Batch.warehouse_id == warehouse_id)
    if status is not None:
        query = query.filter(models.Batch.status == status)
    return _fifo_order(query).all()
