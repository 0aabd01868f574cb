from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from stockdb.apps.accounts import services as account_services
from stockdb.apps.accounts.models import Actor
from stockdb.apps.audit import services as audit_services
from stockdb.apps.inventory import models as inventory_models
from stockdb.apps.inventory import schemas as inventory_schemas
from stockdb.apps.inventory import services as inventory_services
from stockdb.apps.warehouses import services as warehouse_services
from stockdb.apps.workflow import apply_transition
from stockdb.database import unit_of_work
from stockdb.errors import InvalidStateError, NotFoundError, ValidationError

from . import models, schemas

logger = logging.getLogger(__name__)

# Fixed materiality threshold, in percent of the system quantity.
DISCREPANCY_THRESHOLD_PERCENT = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_major_variance(system_quantity: int, variance: int) -> bool:
    """True when |variance| is strictly above the threshold share of the system quantity."""
    return abs(variance) * 100 > system_quantity * DISCREPANCY_THRESHOLD_PERCENT


def get_audit(db: Session, audit_id: int, *, lock: bool = False) -> models.AuditSession:
    query = db.query(models.AuditSession).filter(models.AuditSession.id == audit_id)
    if lock:
        query = query.with_for_update()
    audit = query.first()
    if not audit:
        raise NotFoundError("Audit not found.", audit_id=audit_id)
    return audit


def _require_in_progress(audit: models.AuditSession, *, operation: str) -> None:
    if audit.status != models.AuditStatusEnum.IN_PROGRESS:
        logger.warning(
            "Audit not open for changes",
            extra={"audit_id": audit.id, "status": audit.status.value, "operation": operation},
        )
        raise InvalidStateError(
            f"Cannot {operation} on an audit that is {audit.status.value}.",
            audit_id=audit.id,
            status=audit.status.value,
        )


def create_audit(
    db: Session,
    *,
    actor: Actor,
    payload: schemas.AuditCreate,
) -> models.AuditSession:
    """
    Open an audit and snapshot every location row in scope.

    Without a zone the scope is the whole warehouse, zones included.
    Rows at zero quantity are snapshotted too.
    """
    with unit_of_work(db):
        account_services.require_staff(actor, action="create audits")
        warehouse, zone = warehouse_services.resolve_location(
            db,
            warehouse_id=payload.warehouse_id,
            zone_id=payload.zone_id,
        )

        audit = models.AuditSession(
            warehouse_id=warehouse.id,
            zone_id=zone.id if zone else None,
            audit_type=payload.audit_type,
            status=models.AuditStatusEnum.IN_PROGRESS,
            notes=payload.notes,
            created_by_user_id=actor.user_id,
        )
        db.add(audit)
        db.flush()

        query = db.query(inventory_models.LocationStock).filter(
            inventory_models.LocationStock.warehouse_id == warehouse.id
        )
        if zone is not None:
            query = query.filter(inventory_models.LocationStock.zone_id == zone.id)
        locations = query.order_by(
            inventory_models.LocationStock.zone_id.asc(),
            inventory_models.LocationStock.product_id.asc(),
        ).all()

        for location in locations:
            db.add(
                models.WorksheetItem(
                    audit_id=audit.id,
                    product_id=location.product_id,
                    location_stock_id=location.id,
                    warehouse_id=location.warehouse_id,
                    zone_id=location.zone_id,
                    system_quantity=location.quantity,
                )
            )
        db.flush()

        audit_services.log_event(
            db,
            actor=actor,
            entity_type="stock_audit",
            entity_id=audit.id,
            action="create",
            after={
                "status": audit.status,
                "audit_type": audit.audit_type,
                "warehouse_id": audit.warehouse_id,
                "zone_id": audit.zone_id,
                "items": len(locations),
            },
        )

    logger.info(
        "Audit created",
        extra={"audit_id": audit.id, "warehouse_id": audit.warehouse_id, "items": len(locations)},
    )
    return audit


def record_count(
    db: Session,
    *,
    actor: Actor,
    audit_id: int,
    payload: schemas.CountRecord,
) -> schemas.CountResult:
    """
    Store a physical count for one worksheet item.

    A recount refreshes a still-pending discrepancy, or drops it when the
    new count is within threshold. Items whose discrepancy was already
    resolved cannot be recounted.
    """
    with unit_of_work(db):
        account_services.require_staff(actor, action="record counts")
        if payload.counted_quantity is None or payload.counted_quantity < 0:
            raise ValidationError(
                "counted_quantity must be zero or more.",
                counted_quantity=payload.counted_quantity,
            )
        audit = get_audit(db, audit_id, lock=True)
        _require_in_progress(audit, operation="record counts")

        item = (
            db.query(models.WorksheetItem)
            .filter(
                models.WorksheetItem.id == payload.worksheet_item_id,
                models.WorksheetItem.audit_id == audit.id,
            )
            .with_for_update()
            .first()
        )
        if not item:
            raise NotFoundError(
                "Worksheet item not found in this audit.",
                audit_id=audit.id,
                worksheet_item_id=payload.worksheet_item_id,
            )

        existing = item.discrepancy
        if existing is not None and existing.status == models.DiscrepancyStatusEnum.RESOLVED:
            raise InvalidStateError(
                "The discrepancy for this item is already resolved.",
                worksheet_item_id=item.id,
                discrepancy_id=existing.id,
            )

        variance = payload.counted_quantity - item.system_quantity
        before = {"counted_quantity": item.counted_quantity, "variance": item.variance}
        item.counted_quantity = payload.counted_quantity
        item.variance = variance
        item.count_notes = payload.count_notes
        item.counted_by_user_id = actor.user_id
        item.counted_at = _utcnow()

        major = is_major_variance(item.system_quantity, variance)
        discrepancy = None
        if major:
            discrepancy = existing or models.Discrepancy(
                audit_id=audit.id,
                worksheet_item_id=item.id,
                product_id=item.product_id,
                warehouse_id=item.warehouse_id,
                zone_id=item.zone_id,
                system_quantity=item.system_quantity,
                status=models.DiscrepancyStatusEnum.PENDING,
            )
            discrepancy.counted_quantity = payload.counted_quantity
            discrepancy.variance = variance
            if existing is None:
                item.discrepancy = discrepancy
                audit.discrepancies.append(discrepancy)
        elif existing is not None:
            # back within threshold
            item.discrepancy = None
            audit.discrepancies.remove(existing)
            db.delete(existing)
        db.flush()

        audit_services.log_event(
            db,
            actor=actor,
            entity_type="stock_audit",
            entity_id=audit.id,
            action="record_count",
            before=before,
            after={
                "worksheet_item_id": item.id,
                "counted_quantity": item.counted_quantity,
                "variance": variance,
                "is_major_discrepancy": major,
            },
        )
        result = schemas.CountResult(
            item=schemas.WorksheetItemRead.model_validate(item),
            is_major_discrepancy=major,
            discrepancy_id=discrepancy.id if discrepancy else None,
        )

    if major:
        logger.warning(
            "Major count discrepancy",
            extra={"audit_id": audit.id, "worksheet_item_id": item.id, "variance": variance},
        )
    return result


def resolve_discrepancy(
    db: Session,
    *,
    actor: Actor,
    audit_id: int,
    discrepancy_id: int,
    payload: schemas.DiscrepancyResolve,
) -> models.Discrepancy:
    """
    Close a discrepancy.

    `adjust` writes the variance into the ledger as a location-level
    correction. `accept_system` keeps the ledger as it is.
    """
    with unit_of_work(db):
        account_services.require_staff(actor, action="resolve discrepancies")
        audit = get_audit(db, audit_id, lock=True)
        _require_in_progress(audit, operation="resolve discrepancies")

        discrepancy = (
            db.query(models.Discrepancy)
            .filter(
                models.Discrepancy.id == discrepancy_id,
                models.Discrepancy.audit_id == audit.id,
            )
            .with_for_update()
            .first()
        )
        if not discrepancy:
            raise NotFoundError(
                "Discrepancy not found in this audit.",
                audit_id=audit.id,
                discrepancy_id=discrepancy_id,
            )

        reason = (payload.adjustment_reason or "").strip()
        adjusting = payload.resolution == models.DiscrepancyResolutionEnum.ADJUST
        if adjusting and not reason:
            raise ValidationError("adjustment_reason is required to adjust stock.", discrepancy_id=discrepancy.id)

        now = _utcnow()
        apply_transition(
            db,
            actor=actor,
            entity_type="audit_discrepancy",
            entity_id=discrepancy.id,
            from_state=discrepancy.status,
            to_state=models.DiscrepancyStatusEnum.RESOLVED,
            before_obj={"variance": discrepancy.variance},
            after_obj={
                "audit_id": audit.id,
                "resolution": payload.resolution.value,
                "adjustment_reason": reason or None,
                "resolved_at": now,
            },
            action="resolve",
        )

        if adjusting:
            inventory_services.adjust_location_stock(
                db,
                actor=actor,
                payload=inventory_schemas.StockAdjustRequest(
                    product_id=discrepancy.product_id,
                    warehouse_id=discrepancy.warehouse_id,
                    zone_id=discrepancy.zone_id,
                    quantity_delta=discrepancy.variance,
                    reason=reason,
                    reference=f"AUDIT-{audit.id}",
                ),
            )

        discrepancy.status = models.DiscrepancyStatusEnum.RESOLVED
        discrepancy.resolution = payload.resolution
        discrepancy.adjustment_reason = reason or None
        discrepancy.resolution_notes = payload.resolution_notes or (
            None if adjusting else "System quantity accepted as correct"
        )
        discrepancy.resolved_by_user_id = actor.user_id
        discrepancy.resolved_at = now
        db.flush()

    logger.info(
        "Discrepancy resolved",
        extra={
            "audit_id": audit.id,
            "discrepancy_id": discrepancy.id,
            "resolution": payload.resolution.value,
            "variance": discrepancy.variance,
        },
    )
    return discrepancy


def complete_audit(
    db: Session,
    *,
    actor: Actor,
    audit_id: int,
) -> models.AuditSession:
    """Submit for approval once every item is counted and nothing is pending."""
    with unit_of_work(db):
        account_services.require_staff(actor, action="complete audits")
        audit = get_audit(db, audit_id, lock=True)
        now = _utcnow()
        apply_transition(
            db,
            actor=actor,
            entity_type="stock_audit",
            entity_id=audit.id,
            from_state=audit.status,
            to_state=models.AuditStatusEnum.PENDING_APPROVAL,
            after_obj={"audit_id": audit.id, "submitted_by_user_id": actor.user_id, "submitted_at": now},
            action="complete",
        )
        audit.status = models.AuditStatusEnum.PENDING_APPROVAL
        audit.submitted_by_user_id = actor.user_id
        audit.submitted_at = now
        db.flush()

    logger.info("Audit submitted for approval", extra={"audit_id": audit.id, "user_id": actor.user_id})
    return audit


def approve_audit(
    db: Session,
    *,
    actor: Actor,
    audit_id: int,
    payload: Optional[schemas.AuditApprove] = None,
) -> models.AuditSession:
    """Admin sign-off. Stamps last_audit_date on every audited location."""
    payload = payload or schemas.AuditApprove()
    with unit_of_work(db):
        account_services.require_admin(actor, action="approve audits")
        audit = get_audit(db, audit_id, lock=True)
        now = _utcnow()
        apply_transition(
            db,
            actor=actor,
            entity_type="stock_audit",
            entity_id=audit.id,
            from_state=audit.status,
            to_state=models.AuditStatusEnum.COMPLETED,
            after_obj={
                "approved_by_user_id": actor.user_id,
                "approved_at": now,
                "approval_notes": payload.approval_notes,
            },
            action="approve",
        )
        audit.status = models.AuditStatusEnum.COMPLETED
        audit.approved_by_user_id = actor.user_id
        audit.approved_at = now
        audit.approval_notes = payload.approval_notes

        stamped = inventory_services.stamp_last_audit(
            db,
            location_ids=[item.location_stock_id for item in audit.items],
            audited_at=now,
        )
        db.flush()

    logger.info("Audit approved", extra={"audit_id": audit.id, "locations": stamped, "user_id": actor.user_id})
    return audit


def list_audits(
    db: Session,
    *,
    status: Optional[models.AuditStatusEnum] = None,
    warehouse_id: Optional[int] = None,
) -> List[models.AuditSession]:
    query = db.query(models.AuditSession)
    if status is not None:
        query = query.filter(models.AuditSession.status == status)
    if warehouse_id is not None:
        query = query.filter(models.AuditSession.warehouse_id == warehouse_id)
    return query.order_by(models.AuditSession.created_at.desc(), models.AuditSession.id.desc()).all()


def list_discrepancies(
    db: Session,
    *,
    audit_id: int,
    status: Optional[models.DiscrepancyStatusEnum] = None,
) -> List[models.Discrepancy]:
    audit = get_audit(db, audit_id)
    query = db.query(models.Discrepancy).filter(models.Discrepancy.audit_id == audit.id)
    if status is not None:
        query = query.filter(models.Discrepancy.status == status)
    return query.order_by(func.abs(models.Discrepancy.variance).desc(), models.Discrepancy.id.asc()).all()


def get_audit_summary(db: Session, *, audit_id: int) -> schemas.AuditSummary:
    audit = get_audit(db, audit_id)
    items = audit.items
    counted = [item for item in items if item.counted_quantity is not None]
    pending = [d for d in audit.discrepancies if d.status == models.DiscrepancyStatusEnum.PENDING]
    total = len(items)
    return schemas.AuditSummary(
        audit_id=audit.id,
        status=audit.status,
        total_items=total,
        counted_items=len(counted),
        variance_items=len([item for item in counted if item.variance]),
        major_discrepancies=len(audit.discrepancies),
        pending_discrepancies=len(pending),
        percent_complete=round(len(counted) * 100.0 / total, 1) if total else 100.0,
    )
