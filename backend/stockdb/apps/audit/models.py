from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, desc, event
from sqlalchemy.orm import synonym

from stockdb.database import Base
from stockdb.errors import InvalidStateError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(Base):
    """
    Append-only audit trail for stock, stock-audit and custody actions.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("ix_audit_events_entity", "entity_type", "entity_id"),
        Index("ix_audit_events_action", "action"),
        Index("ix_audit_events_time_desc", desc("occurred_at")),
    )

    id = Column(Integer, primary_key=True, index=True)
    entity_type = Column(String(64), nullable=False, index=True)
    entity_id = Column(String(64), nullable=False, index=True)
    action = Column(String(64), nullable=False)
    actor_user_id = Column(String(36), nullable=True, index=True)
    actor_role = Column(String(16), nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)
    correlation_id = Column(String(64), nullable=True, index=True)
    metadata_json = Column("metadata", JSON, nullable=True)

    details = synonym("after")

    def __repr__(self) -> str:
        return f"<AuditEvent id={self.id} entity={self.entity_type}:{self.entity_id} action={self.action}>"


@event.listens_for(AuditEvent, "before_update")
def _reject_update(mapper, connection, target) -> None:
    raise InvalidStateError("Audit events are append-only.", audit_event_id=target.id)


@event.listens_for(AuditEvent, "before_delete")
def _reject_delete(mapper, connection, target) -> None:
    raise InvalidStateError("Audit events are append-only.", audit_event_id=target.id)
