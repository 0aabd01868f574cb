from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from stockdb.apps.accounts import services as account_services
from stockdb.apps.accounts.models import Actor
from stockdb.apps.audit import services as audit_services
from stockdb.apps.inventory import models as inventory_models
from stockdb.apps.inventory import services as inventory_services
from stockdb.apps.system_config import services as config_services
from stockdb.apps.warehouses import services as warehouse_services
from stockdb.apps.workflow import apply_transition
from stockdb.database import unit_of_work
from stockdb.errors import AuthorizationError, InvalidStateError, NotFoundError, ValidationError

from . import models, schemas

logger = logging.getLogger(__name__)

RESTING_STATES = (models.CustodyStatusEnum.IN_STORAGE, models.CustodyStatusEnum.ASSIGNED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_item(db: Session, item_id: int, *, lock: bool = False) -> models.CustodyItem:
    query = db.query(models.CustodyItem).filter(models.CustodyItem.id == item_id)
    if lock:
        query = query.with_for_update()
    item = query.first()
    if not item:
        raise NotFoundError("High-value item not found.", item_id=item_id)
    return item


def _get_request(db: Session, approval_id: int) -> models.ApprovalRequest:
    request = (
        db.query(models.ApprovalRequest)
        .filter(models.ApprovalRequest.id == approval_id)
        .with_for_update()
        .first()
    )
    if not request:
        raise NotFoundError("Approval request not found.", approval_id=approval_id)
    return request


def _item_read(item: models.CustodyItem) -> schemas.CustodyItemRead:
    return schemas.CustodyItemRead.model_validate(item)


def _require_transferable(item: models.CustodyItem, *, to_custodian_id: str) -> None:
    if item.status not in RESTING_STATES:
        raise InvalidStateError(
            f"Item is {item.status.value}; receipt must be acknowledged before another transfer.",
            item_id=item.id,
            status=item.status.value,
        )
    if to_custodian_id == item.current_custodian_id:
        raise ValidationError(
            "Item is already with this custodian.",
            item_id=item.id,
            custodian_id=to_custodian_id,
        )


def register_item(
    db: Session,
    *,
    actor: Actor,
    payload: schemas.CustodyItemCreate,
) -> models.CustodyItem:
    with unit_of_work(db):
        account_services.require_staff(actor, action="register high-value items")
        product = inventory_services.get_product(db, payload.product_id)
        warehouse, zone = warehouse_services.resolve_location(
            db,
            warehouse_id=payload.warehouse_id,
            zone_id=payload.zone_id,
            require_active=True,
        )
        serial = payload.serial_number.strip()
        if db.query(models.CustodyItem.id).filter(models.CustodyItem.serial_number == serial).first():
            raise ValidationError(f"Serial number {serial} is already registered.", serial_number=serial)

        item = models.CustodyItem(
            product_id=product.id,
            serial_number=serial,
            current_custodian_id=payload.custodian_id.strip(),
            status=models.CustodyStatusEnum.IN_STORAGE,
            warehouse_id=warehouse.id if warehouse else None,
            zone_id=zone.id if zone else None,
            notes=payload.notes,
            last_custody_change=_utcnow(),
            created_by_user_id=actor.user_id,
        )
        db.add(item)
        db.flush()
        audit_services.log_event(
            db,
            actor=actor,
            entity_type="custody_item",
            entity_id=item.id,
            action="register",
            after={
                "serial_number": serial,
                "product_id": product.id,
                "custodian_id": item.current_custodian_id,
                "status": item.status,
                "value": item.value,
            },
        )
    logger.info("High-value item registered", extra={"item_id": item.id, "serial_number": serial})
    return item


def _approval_required(db: Session, *, item: models.CustodyItem, actor: Actor, requested: bool) -> bool:
    # Administrators are never gated.
    if actor.is_admin:
        return False
    if requested:
        return True
    return item.value >= config_services.get_approval_threshold(db)


def _execute_transfer(
    db: Session,
    *,
    actor: Actor,
    item: models.CustodyItem,
    from_custodian_id: Optional[str],
    to_custodian_id: str,
    transfer_reason: str,
    location_from: Optional[str],
    location_to: Optional[str],
    notes: Optional[str],
    approval_request: Optional[models.ApprovalRequest] = None,
) -> models.CustodyTransfer:
    now = _utcnow()
    apply_transition(
        db,
        actor=actor,
        entity_type="custody_item",
        entity_id=item.id,
        from_state=item.status,
        to_state=models.CustodyStatusEnum.IN_TRANSIT,
        before_obj={"custodian_id": item.current_custodian_id},
        after_obj={
            "from_custodian_id": from_custodian_id,
            "to_custodian_id": to_custodian_id,
            "authorized_by_user_id": actor.user_id,
            "transfer_reason": transfer_reason,
            "location_from": location_from,
            "location_to": location_to,
            "approval_request_id": approval_request.id if approval_request else None,
        },
        action="custody_transfer",
    )

    transfer = models.CustodyTransfer(
        item_id=item.id,
        from_custodian_id=from_custodian_id,
        to_custodian_id=to_custodian_id,
        transfer_reason=transfer_reason,
        location_from=location_from,
        location_to=location_to,
        authorized_by_user_id=actor.user_id,
        approval_request_id=approval_request.id if approval_request else None,
        notes=notes,
        transferred_at=now,
    )
    db.add(transfer)
    item.current_custodian_id = to_custodian_id
    item.status = models.CustodyStatusEnum.IN_TRANSIT
    item.last_custody_change = now
    db.flush()
    return transfer


def request_transfer(
    db: Session,
    *,
    actor: Actor,
    item_id: int,
    payload: schemas.TransferRequest,
) -> schemas.TransferOutcome:
    """
    Hand an item to another custodian, or queue the hand-off for approval.

    Approval is needed when asked for explicitly or when the item's value
    is at or above the approval threshold, unless the actor is an admin.
    """
    with unit_of_work(db):
        account_services.require_staff(actor, action="transfer custody")
        to_custodian_id = (payload.to_custodian_id or "").strip()
        reason = (payload.transfer_reason or "").strip()
        if not to_custodian_id:
            raise ValidationError("A destination custodian is required.")
        if not reason:
            raise ValidationError("A transfer reason is required.")

        item = get_item(db, item_id, lock=True)
        _require_transferable(item, to_custodian_id=to_custodian_id)

        if _approval_required(db, item=item, actor=actor, requested=payload.require_approval):
            pending = (
                db.query(models.ApprovalRequest.id)
                .filter(
                    models.ApprovalRequest.item_id == item.id,
                    models.ApprovalRequest.status == models.ApprovalStatusEnum.PENDING,
                )
                .first()
            )
            if pending:
                raise InvalidStateError(
                    "A transfer request for this item is already awaiting approval.",
                    item_id=item.id,
                    approval_id=pending.id,
                )

            request = models.ApprovalRequest(
                item_id=item.id,
                product_id=item.product_id,
                transaction_type="custody_transfer",
                from_custodian_id=item.current_custodian_id,
                to_custodian_id=to_custodian_id,
                transfer_reason=reason,
                location_from=payload.location_from,
                location_to=payload.location_to,
                item_value=item.value,
                notes=payload.notes,
                requested_by_user_id=actor.user_id,
                status=models.ApprovalStatusEnum.PENDING,
            )
            db.add(request)
            db.flush()
            audit_services.log_event(
                db,
                actor=actor,
                entity_type="custody_item",
                entity_id=item.id,
                action="transfer_requested",
                after={
                    "approval_id": request.id,
                    "from_custodian_id": request.from_custodian_id,
                    "to_custodian_id": to_custodian_id,
                    "transfer_reason": reason,
                    "item_value": request.item_value,
                    "explicit": payload.require_approval,
                },
            )
            outcome = schemas.TransferOutcome(
                requires_approval=True,
                item=_item_read(item),
                approval_request=schemas.ApprovalRequestRead.model_validate(request),
            )
        else:
            transfer = _execute_transfer(
                db,
                actor=actor,
                item=item,
                from_custodian_id=item.current_custodian_id,
                to_custodian_id=to_custodian_id,
                transfer_reason=reason,
                location_from=payload.location_from,
                location_to=payload.location_to,
                notes=payload.notes,
            )
            outcome = schemas.TransferOutcome(
                requires_approval=False,
                item=_item_read(item),
                transfer=schemas.CustodyTransferRead.model_validate(transfer),
            )

    logger.info(
        "Custody transfer requested",
        extra={
            "item_id": item_id,
            "to_custodian_id": to_custodian_id,
            "requires_approval": outcome.requires_approval,
            "user_id": actor.user_id,
        },
    )
    return outcome


def approve_transfer(
    db: Session,
    *,
    actor: Actor,
    approval_id: int,
    payload: Optional[schemas.ApprovalDecision] = None,
) -> schemas.ApprovalOutcome:
    """Carry out a pending request with the parties it was raised for."""
    payload = payload or schemas.ApprovalDecision()
    with unit_of_work(db):
        account_services.require_admin(actor, action="approve custody transfers")
        request = _get_request(db, approval_id)
        now = _utcnow()
        apply_transition(
            db,
            actor=actor,
            entity_type="custody_approval",
            entity_id=request.id,
            from_state=request.status,
            to_state=models.ApprovalStatusEnum.APPROVED,
            after_obj={"decided_by_user_id": actor.user_id, "decided_at": now, "notes": payload.notes},
            action="transfer_approved",
        )

        item = get_item(db, request.item_id, lock=True)
        _require_transferable(item, to_custodian_id=request.to_custodian_id)
        if item.current_custodian_id != request.from_custodian_id:
            raise InvalidStateError(
                "Custody changed after this request was raised.",
                item_id=item.id,
                approval_id=request.id,
            )

        transfer = _execute_transfer(
            db,
            actor=actor,
            item=item,
            from_custodian_id=request.from_custodian_id,
            to_custodian_id=request.to_custodian_id,
            transfer_reason=request.transfer_reason,
            location_from=request.location_from,
            location_to=request.location_to,
            notes=request.notes,
            approval_request=request,
        )
        request.status = models.ApprovalStatusEnum.APPROVED
        request.decided_by_user_id = actor.user_id
        request.decided_at = now
        request.decision_notes = payload.notes
        db.flush()

        outcome = schemas.ApprovalOutcome(
            approval_request=schemas.ApprovalRequestRead.model_validate(request),
            item=_item_read(item),
            transfer=schemas.CustodyTransferRead.model_validate(transfer),
        )

    logger.info(
        "Custody transfer approved",
        extra={"approval_id": approval_id, "item_id": outcome.item.id, "user_id": actor.user_id},
    )
    return outcome


def reject_transfer(
    db: Session,
    *,
    actor: Actor,
    approval_id: int,
    payload: Optional[schemas.ApprovalDecision] = None,
) -> schemas.ApprovalOutcome:
    payload = payload or schemas.ApprovalDecision()
    with unit_of_work(db):
        account_services.require_admin(actor, action="reject custody transfers")
        request = _get_request(db, approval_id)
        now = _utcnow()
        apply_transition(
            db,
            actor=actor,
            entity_type="custody_approval",
            entity_id=request.id,
            from_state=request.status,
            to_state=models.ApprovalStatusEnum.REJECTED,
            after_obj={"decided_by_user_id": actor.user_id, "decided_at": now, "notes": payload.notes},
            action="transfer_rejected",
        )
        request.status = models.ApprovalStatusEnum.REJECTED
        request.decided_by_user_id = actor.user_id
        request.decided_at = now
        request.decision_notes = payload.notes
        db.flush()

        outcome = schemas.ApprovalOutcome(
            approval_request=schemas.ApprovalRequestRead.model_validate(request),
            item=_item_read(request.item),
        )

    logger.info("Custody transfer rejected", extra={"approval_id": approval_id, "user_id": actor.user_id})
    return outcome


def acknowledge_receipt(
    db: Session,
    *,
    actor: Actor,
    item_id: int,
    payload: Optional[schemas.AcknowledgeRequest] = None,
) -> models.CustodyItem:
    """
    Confirm receipt of an item in transit.

    Only the current custodian may acknowledge, and only the most recent
    transfer addressed to them.
    """
    payload = payload or schemas.AcknowledgeRequest()
    with unit_of_work(db):
        if actor is None or not actor.user_id:
            raise ValidationError("An acting user is required for this operation.")
        if payload.status not in RESTING_STATES:
            raise ValidationError(
                "Receipt must leave the item in storage or assigned.",
                status=payload.status.value,
            )
        item = get_item(db, item_id, lock=True)
        if item.current_custodian_id != actor.user_id:
            logger.warning(
                "Acknowledgment by non-custodian rejected",
                extra={"item_id": item.id, "user_id": actor.user_id},
            )
            raise AuthorizationError(
                "Only the current custodian can acknowledge receipt.",
                item_id=item.id,
                user_id=actor.user_id,
            )

        transfer = (
            db.query(models.CustodyTransfer)
            .filter(
                models.CustodyTransfer.item_id == item.id,
                models.CustodyTransfer.to_custodian_id == actor.user_id,
            )
            .order_by(models.CustodyTransfer.transferred_at.desc(), models.CustodyTransfer.id.desc())
            .with_for_update()
            .first()
        )
        if transfer is None or transfer.acknowledged_at is not None:
            raise NotFoundError("No pending custody transfer found.", item_id=item.id)

        now = _utcnow()
        apply_transition(
            db,
            actor=actor,
            entity_type="custody_item",
            entity_id=item.id,
            from_state=item.status,
            to_state=payload.status,
            after_obj={"transfer_id": transfer.id, "acknowledged_at": now, "notes": payload.notes},
            action="custody_acknowledged",
        )
        transfer.acknowledged_at = now
        transfer.acknowledged_by_user_id = actor.user_id
        transfer.acknowledgment_notes = payload.notes
        item.status = payload.status
        item.last_custody_change = now
        db.flush()

    logger.info(
        "Custody receipt acknowledged",
        extra={"item_id": item.id, "transfer_id": transfer.id, "user_id": actor.user_id},
    )
    return item


def list_items(
    db: Session,
    *,
    status: Optional[models.CustodyStatusEnum] = None,
    min_value: Optional[Decimal] = None,
    custodian_id: Optional[str] = None,
) -> List[models.CustodyItem]:
    query = db.query(models.CustodyItem).join(
        inventory_models.Product, inventory_models.Product.id == models.CustodyItem.product_id
    )
    if status is not None:
        query = query.filter(models.CustodyItem.status == status)
    if min_value is not None:
        query = query.filter(inventory_models.Product.unit_price >= min_value)
    if custodian_id:
        query = query.filter(models.CustodyItem.current_custodian_id == custodian_id)
    return query.order_by(inventory_models.Product.unit_price.desc(), models.CustodyItem.id.asc()).all()


def get_custody_chain(db: Session, *, item_id: int) -> schemas.CustodyChainRead:
    item = get_item(db, item_id)
    transfers = (
        db.query(models.CustodyTransfer)
        .filter(models.CustodyTransfer.item_id == item.id)
        .order_by(models.CustodyTransfer.transferred_at.desc(), models.CustodyTransfer.id.desc())
        .all()
    )
    return schemas.CustodyChainRead(
        item=_item_read(item),
        transfers=[schemas.CustodyTransferRead.model_validate(t) for t in transfers],
    )


def list_approval_requests(
    db: Session,
    *,
    status: Optional[models.ApprovalStatusEnum] = models.ApprovalStatusEnum.PENDING,
) -> List[models.ApprovalRequest]:
    query = db.query(models.ApprovalRequest)
    if status is not None:
        query = query.filter(models.ApprovalRequest.status == status)
    return query.order_by(models.ApprovalRequest.requested_at.desc(), models.ApprovalRequest.id.desc()).all()
