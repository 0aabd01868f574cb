from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
import enum
import logging
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from stockdb.apps.accounts.models import Actor

from . import models, schemas

logger = logging.getLogger(__name__)


def _json_safe(payload: Optional[dict]) -> Optional[dict]:
    """Coerce Decimals, dates and enums so the JSON column accepts them."""
    if payload is None:
        return None

    def convert(value: Any) -> Any:
        if isinstance(value, enum.Enum):
            return value.value
        if isinstance(value, dict):
            return {str(k): convert(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [convert(v) for v in value]
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        return value

    return convert(payload)


def create_audit_event(
    db: Session,
    *,
    data: schemas.AuditEventCreate,
) -> models.AuditEvent:
    event = models.AuditEvent(
        entity_type=data.entity_type,
        entity_id=data.entity_id,
        action=data.action,
        actor_user_id=data.actor_user_id,
        actor_role=data.actor_role,
        before=_json_safe(data.before),
        after=_json_safe(data.after),
        correlation_id=data.correlation_id,
        metadata_json=_json_safe(data.metadata),
    )
    if data.occurred_at is not None:
        event.occurred_at = data.occurred_at
    db.add(event)
    db.flush()
    return event


def log_event(
    db: Session,
    *,
    actor: Optional[Actor],
    entity_type: str,
    entity_id: Any,
    action: str,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    correlation_id: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> models.AuditEvent:
    """
    Append an audit entry inside the caller's unit of work.

    Failures propagate: a state change that cannot be audited must not
    commit.
    """
    try:
        return create_audit_event(
            db,
            data=schemas.AuditEventCreate(
                entity_type=entity_type,
                entity_id=str(entity_id),
                action=action,
                actor_user_id=actor.user_id if actor else None,
                actor_role=actor.role.value if actor else None,
                before=before,
                after=after,
                correlation_id=correlation_id,
                metadata=metadata,
            ),
        )
    except Exception:
        logger.error(
            "Failed to log audit event",
            extra={"entity_type": entity_type, "entity_id": str(entity_id), "action": action},
        )
        raise


def list_audit_events(
    db: Session,
    *,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 200,
) -> List[models.AuditEvent]:
    query = db.query(models.AuditEvent)
    if entity_type:
        query = query.filter(models.AuditEvent.entity_type == entity_type)
    if entity_id:
        query = query.filter(models.AuditEvent.entity_id == str(entity_id))
    if action:
        query = query.filter(models.AuditEvent.action == action)
    if start:
        query = query.filter(models.AuditEvent.occurred_at >= start)
    if end:
        query = query.filter(models.AuditEvent.occurred_at <= end)
    return (
        query.order_by(models.AuditEvent.occurred_at.desc(), models.AuditEvent.id.desc())
        .limit(limit)
        .all()
    )
