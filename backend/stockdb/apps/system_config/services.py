from __future__ import annotations

import logging
import os
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm import Session

from stockdb.apps.accounts import services as account_services
from stockdb.apps.accounts.models import Actor
from stockdb.apps.audit import services as audit_services
from stockdb.database import unit_of_work
from stockdb.errors import ValidationError

from . import models, schemas

logger = logging.getLogger(__name__)

HIGH_VALUE_THRESHOLD_KEY = "high_value_threshold"
APPROVAL_THRESHOLD_KEY = "high_value_approval_threshold"

DEFAULTS = {
    HIGH_VALUE_THRESHOLD_KEY: os.getenv("HIGH_VALUE_THRESHOLD", "10000"),
    APPROVAL_THRESHOLD_KEY: os.getenv("CUSTODY_APPROVAL_THRESHOLD", "50000"),
}


def _as_decimal(key: str, raw: str) -> Decimal:
    try:
        return Decimal(raw)
    except (InvalidOperation, TypeError):
        raise ValidationError(f"Setting {key} is not a number.", key=key, value=raw)


def get_value(db: Session, key: str) -> Decimal:
    if key not in DEFAULTS:
        raise ValidationError(f"Unknown setting {key}.", key=key)
    row = db.get(models.SystemConfig, key)
    if row is not None:
        return _as_decimal(key, row.value)
    return _as_decimal(key, DEFAULTS[key])


def get_approval_threshold(db: Session) -> Decimal:
    return get_value(db, APPROVAL_THRESHOLD_KEY)


def get_thresholds(db: Session) -> schemas.ThresholdsRead:
    return schemas.ThresholdsRead(
        high_value_threshold=get_value(db, HIGH_VALUE_THRESHOLD_KEY),
        high_value_approval_threshold=get_value(db, APPROVAL_THRESHOLD_KEY),
    )


def update_thresholds(
    db: Session,
    *,
    actor: Actor,
    payload: schemas.ThresholdsUpdate,
) -> schemas.ThresholdsRead:
    """Store new custody thresholds. Administrators only."""
    with unit_of_work(db):
        account_services.require_admin(actor, action="update thresholds")
        before = get_thresholds(db).model_dump()

        changes = {
            HIGH_VALUE_THRESHOLD_KEY: payload.high_value_threshold,
            APPROVAL_THRESHOLD_KEY: payload.high_value_approval_threshold,
        }
        for key, value in changes.items():
            if value is None:
                continue
            row = db.get(models.SystemConfig, key, with_for_update=True)
            if row is None:
                row = models.SystemConfig(key=key, value=str(value))
                db.add(row)
            row.value = str(value)
            row.updated_by_user_id = actor.user_id
        db.flush()

        after = get_thresholds(db)
        audit_services.log_event(
            db,
            actor=actor,
            entity_type="system_config",
            entity_id="thresholds",
            action="update_thresholds",
            before=before,
            after=after.model_dump(),
        )

    logger.info(
        "Custody thresholds updated",
        extra={"user_id": actor.user_id, **{k: str(v) for k, v in after.model_dump().items()}},
    )
    return after
