from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from stockdb.apps.accounts.models import AccountRole, Actor
from stockdb.database import get_db, get_read_db
from stockdb.security import WRITE_ROLES, get_current_actor, require_roles

from . import models, schemas, services

router = APIRouter(prefix="/stock-audits", tags=["stock-audits"])


@router.get("", response_model=List[schemas.AuditRead])
def list_audits(
    status_filter: Optional[models.AuditStatusEnum] = None,
    warehouse_id: Optional[int] = None,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.list_audits(db, status=status_filter, warehouse_id=warehouse_id)


@router.post("", response_model=schemas.AuditDetailRead, status_code=status.HTTP_201_CREATED)
def create_audit(
    payload: schemas.AuditCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.create_audit(db, actor=actor, payload=payload)


@router.get("/{audit_id}", response_model=schemas.AuditDetailRead)
def get_audit(
    audit_id: int,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.get_audit(db, audit_id)


@router.get("/{audit_id}/summary", response_model=schemas.AuditSummary)
def get_audit_summary(
    audit_id: int,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.get_audit_summary(db, audit_id=audit_id)


@router.post("/{audit_id}/counts", response_model=schemas.CountResult)
def record_count(
    audit_id: int,
    payload: schemas.CountRecord,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.record_count(db, actor=actor, audit_id=audit_id, payload=payload)


@router.get("/{audit_id}/discrepancies", response_model=List[schemas.DiscrepancyRead])
def list_discrepancies(
    audit_id: int,
    status_filter: Optional[models.DiscrepancyStatusEnum] = None,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
):
    return services.list_discrepancies(db, audit_id=audit_id, status=status_filter)


@router.post(
    "/{audit_id}/discrepancies/{discrepancy_id}/resolve",
    response_model=schemas.DiscrepancyRead,
)
def resolve_discrepancy(
    audit_id: int,
    discrepancy_id: int,
    payload: schemas.DiscrepancyResolve,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.resolve_discrepancy(
        db,
        actor=actor,
        audit_id=audit_id,
        discrepancy_id=discrepancy_id,
        payload=payload,
    )


@router.post("/{audit_id}/complete", response_model=schemas.AuditRead)
def complete_audit(
    audit_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(*WRITE_ROLES)),
):
    return services.complete_audit(db, actor=actor, audit_id=audit_id)


@router.post("/{audit_id}/approve", response_model=schemas.AuditRead)
def approve_audit(
    audit_id: int,
    payload: Optional[schemas.AuditApprove] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(AccountRole.ADMIN)),
):
    return services.approve_audit(db, actor=actor, audit_id=audit_id, payload=payload)
