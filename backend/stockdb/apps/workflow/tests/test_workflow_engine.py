from __future__ import annotations

import pytest

from stockdb.apps.audit import models as audit_models
from stockdb.apps.workflow import TransitionError, allowed_targets, apply_transition


def test_apply_transition_records_custody_dispatch(db_session, staff):
    apply_transition(
        db_session,
        actor=staff,
        entity_type="custody_item",
        entity_id=3,
        from_state="in_storage",
        to_state="in_transit",
        after_obj={
            "from_custodian_id": "u-1",
            "to_custodian_id": "u-2",
            "authorized_by_user_id": staff.user_id,
        },
        action="custody_transfer",
    )
    db_session.commit()

    event = (
        db_session.query(audit_models.AuditEvent)
        .filter(audit_models.AuditEvent.entity_type == "custody_item")
        .one()
    )
    assert event.action == "custody_transfer"
    assert event.before["status"] == "in_storage"
    assert event.after["status"] == "in_transit"


def test_apply_transition_rejects_unknown_edge(db_session, staff):
    with pytest.raises(TransitionError) as excinfo:
        apply_transition(
            db_session,
            actor=staff,
            entity_type="stock_audit",
            entity_id=1,
            from_state="completed",
            to_state="in_progress",
        )
    assert excinfo.value.code == "invalid_transition"


def test_apply_transition_reports_every_failed_guard(db_session, staff):
    with pytest.raises(TransitionError) as excinfo:
        apply_transition(
            db_session,
            actor=staff,
            entity_type="custody_item",
            entity_id=3,
            from_state="assigned",
            to_state="in_transit",
            after_obj={"from_custodian_id": "u-1"},
        )
    fields = {item["field"] for item in excinfo.value.detail}
    assert excinfo.value.code == "missing_requirements"
    assert fields == {"to_custodian_id", "authorized_by_user_id"}


def test_discrepancy_adjustment_requires_reason(db_session, staff):
    with pytest.raises(TransitionError) as excinfo:
        apply_transition(
            db_session,
            actor=staff,
            entity_type="audit_discrepancy",
            entity_id=9,
            from_state="pending",
            to_state="resolved",
            after_obj={"resolution": "adjust", "adjustment_reason": "  "},
        )
    assert excinfo.value.detail[0]["field"] == "adjustment_reason"


def test_allowed_targets_lists_registry_edges():
    assert allowed_targets("custody_item", "in_transit") == ["assigned", "in_storage"]
    assert allowed_targets("custody_approval", "approved") == []
