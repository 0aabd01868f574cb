from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from stockdb.apps.audit import models as audit_models
from stockdb.apps.audit import services as audit_services
from stockdb.errors import InvalidStateError


def test_log_event_records_actor_and_coerces_payload(db_session, staff):
    event = audit_services.log_event(
        db_session,
        actor=staff,
        entity_type="custody_item",
        entity_id=7,
        action="custody_transfer",
        before={"status": "in_storage"},
        after={"value": Decimal("125.50"), "on": date(2024, 3, 1)},
    )
    db_session.commit()

    stored = db_session.get(audit_models.AuditEvent, event.id)
    assert stored.entity_id == "7"
    assert stored.actor_user_id == staff.user_id
    assert stored.actor_role == "STAFF"
    assert stored.after == {"value": "125.50", "on": "2024-03-01"}
    assert stored.details == stored.after


def test_audit_events_are_append_only(db_session, staff):
    event = audit_services.log_event(
        db_session,
        actor=staff,
        entity_type="product",
        entity_id=1,
        action="receive",
    )
    db_session.commit()

    event.action = "tampered"
    with pytest.raises(InvalidStateError):
        db_session.flush()
    db_session.rollback()

    db_session.delete(db_session.get(audit_models.AuditEvent, event.id))
    with pytest.raises(InvalidStateError):
        db_session.flush()
    db_session.rollback()


def test_list_audit_events_filters_by_entity_and_action(db_session, staff, admin):
    audit_services.log_event(db_session, actor=staff, entity_type="stock_audit", entity_id=1, action="create")
    audit_services.log_event(db_session, actor=admin, entity_type="stock_audit", entity_id=1, action="approve")
    audit_services.log_event(db_session, actor=staff, entity_type="stock_audit", entity_id=2, action="create")
    db_session.commit()

    events = audit_services.list_audit_events(db_session, entity_type="stock_audit", entity_id="1")
    assert {e.action for e in events} == {"create", "approve"}

    approvals = audit_services.list_audit_events(db_session, action="approve")
    assert len(approvals) == 1
    assert approvals[0].actor_role == "ADMIN"
