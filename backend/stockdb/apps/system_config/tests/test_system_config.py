from __future__ import annotations

from decimal import Decimal

import pytest

from stockdb.apps.audit import models as audit_models
from stockdb.apps.system_config import schemas, services
from stockdb.errors import AuthorizationError


def test_thresholds_fall_back_to_environment_defaults(db_session):
    thresholds = services.get_thresholds(db_session)
    assert thresholds.high_value_threshold == Decimal("10000")
    assert thresholds.high_value_approval_threshold == Decimal("50000")


def test_admin_update_overrides_default_and_is_audited(db_session, admin):
    services.update_thresholds(
        db_session,
        actor=admin,
        payload=schemas.ThresholdsUpdate(high_value_approval_threshold=Decimal("75000")),
    )

    assert services.get_approval_threshold(db_session) == Decimal("75000")
    assert services.get_value(db_session, services.HIGH_VALUE_THRESHOLD_KEY) == Decimal("10000")
    event = (
        db_session.query(audit_models.AuditEvent)
        .filter(audit_models.AuditEvent.action == "update_thresholds")
        .one()
    )
    assert event.before["high_value_approval_threshold"] == "50000"
    assert event.after["high_value_approval_threshold"] == "75000"


def test_staff_cannot_update_thresholds(db_session, staff):
    with pytest.raises(AuthorizationError):
        services.update_thresholds(
            db_session,
            actor=staff,
            payload=schemas.ThresholdsUpdate(high_value_threshold=Decimal("1")),
        )
    assert services.get_value(db_session, services.HIGH_VALUE_THRESHOLD_KEY) == Decimal("10000")
