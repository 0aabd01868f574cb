from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from stockdb.apps.accounts.models import AccountRole, Actor
from stockdb.apps.system_config import schemas as config_schemas
from stockdb.apps.system_config import services as config_services
from stockdb.database import get_db, get_read_db
from stockdb.security import WRITE_ROLES, get_current_actor, require_roles

from . import models, schemas, services

router = APIRouter(prefix="/custody", tags=["custody"])


@router.get("/items", response_model=List[schemas.CustodyItemRead])
def list_items(
    status_filter: Optional[models.CustodyStatusEnum] = None,
    min_value: Optional[Decimal] = None,
    custodian_id: Optional[str] = None,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.list_items(db, status=status_filter, min_value=min_value, custodian_id=custodian_id)


@router.post("/items", response_model=schemas.CustodyItemRead, status_code=status.HTTP_201_CREATED)
def register_item(
    payload: schemas.CustodyItemCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.register_item(db, actor=actor, payload=payload)


@router.get("/items/{item_id}/chain", response_model=schemas.CustodyChainRead)
def get_custody_chain(
    item_id: int,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.get_custody_chain(db, item_id=item_id)


@router.post("/items/{item_id}/transfer", response_model=schemas.TransferOutcome)
def request_transfer(
    item_id: int,
    payload: schemas.TransferRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.request_transfer(db, actor=actor, item_id=item_id, payload=payload)


@router.post("/items/{item_id}/acknowledge", response_model=schemas.CustodyItemRead)
def acknowledge_receipt(
    item_id: int,
    payload: Optional[schemas.AcknowledgeRequest] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.acknowledge_receipt(db, actor=actor, item_id=item_id, payload=payload)


@router.get("/approvals", response_model=List[schemas.ApprovalRequestRead])
def list_approval_requests(
    status_filter: Optional[models.ApprovalStatusEnum] = models.ApprovalStatusEnum.PENDING,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(require_roles(AccountRole.ADMIN)),
):
    return services.list_approval_requests(db, status=status_filter)


@router.post("/approvals/{approval_id}/approve", response_model=schemas.ApprovalOutcome)
def approve_transfer(
    approval_id: int,
    payload: Optional[schemas.ApprovalDecision] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(AccountRole.ADMIN)),
):
    return services.approve_transfer(db, actor=actor, approval_id=approval_id, payload=payload)


@router.post("/approvals/{approval_id}/reject", response_model=schemas.ApprovalOutcome)
def reject_transfer(
    approval_id: int,
    payload: Optional[schemas.ApprovalDecision] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(AccountRole.ADMIN)),
):
    return services.reject_transfer(db, actor=actor, approval_id=approval_id, payload=payload)


@router.get("/config", response_model=config_schemas.ThresholdsRead)
def get_thresholds(
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(require_roles(AccountRole.ADMIN)),
):
    return config_services.get_thresholds(db)


@router.put("/config", response_model=config_schemas.ThresholdsRead)
def update_thresholds(
    payload: config_schemas.ThresholdsUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(AccountRole.ADMIN)),
):
    return config_services.update_thresholds(db, actor=actor, payload=payload)
