from __future__ import annotations

import enum
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from stockdb.apps.accounts.models import Actor
from stockdb.apps.audit import models as audit_models
from stockdb.apps.audit import services as audit_services
from stockdb.errors import InvalidStateError

from .registry import WORKFLOWS


class TransitionError(InvalidStateError):
    """A status change the registry forbids or whose guards failed."""

    def __init__(self, code: str, detail: List[Dict[str, str]]) -> None:
        message = "; ".join(f"{item['field']}: {item['reason']}" for item in detail) or code
        super().__init__(message)
        self.code = code
        self.detail = detail

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["detail"] = self.detail
        return payload


def _state(value: Any) -> str:
    if isinstance(value, enum.Enum):
        return value.value
    return str(value)


def allowed_targets(entity_type: str, from_state: Any) -> List[str]:
    workflow = WORKFLOWS.get(entity_type, {})
    return sorted(workflow.get("transitions", {}).get(_state(from_state), {}).keys())


def apply_transition(
    db: Session,
    *,
    actor: Optional[Actor],
    entity_type: str,
    entity_id: Any,
    from_state: Any,
    to_state: Any,
    before_obj: Any = None,
    after_obj: Any = None,
    action: str = "transition",
    correlation_id: Optional[str] = None,
) -> audit_models.AuditEvent:
    """
    Validate a status change against the registry and record it.

    Runs every guard for the edge and reports all failures together.
    The caller applies the new status only after this returns.
    """
    from_state = _state(from_state)
    to_state = _state(to_state)

    workflow = WORKFLOWS.get(entity_type)
    if not workflow:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "entity_type", "reason": f"No workflow registered for {entity_type}"}],
        )

    transitions = workflow.get("transitions", {})
    allowed = transitions.get(from_state, {})
    guards = allowed.get(to_state)

    if guards is None:
        raise TransitionError(
            code="invalid_transition",
            detail=[{"field": "status", "reason": f"Cannot transition from {from_state} to {to_state}"}],
        )

    failures: List[Dict[str, str]] = []
    for guard in guards:
        failures.extend(
            guard(
                db,
                before_obj=before_obj,
                after_obj=after_obj,
                from_state=from_state,
                to_state=to_state,
            )
        )

    if failures:
        raise TransitionError(code="missing_requirements", detail=failures)

    before_payload: Dict[str, Any] = {"status": from_state}
    after_payload: Dict[str, Any] = {"status": to_state}
    if isinstance(before_obj, dict):
        before_payload.update(before_obj)
    if isinstance(after_obj, dict):
        after_payload.update(after_obj)

    return audit_services.log_event(
        db,
        actor=actor,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        before=before_payload,
        after=after_payload,
        correlation_id=correlation_id,
        metadata={"workflow": entity_type},
    )
